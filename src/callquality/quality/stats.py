"""
Raw stats report adapter for CallQuality.

Turns one transport statistics snapshot (inbound/outbound RTP reports plus
the active candidate pair) into a MetricSample. Byte counters are kept
between snapshots so bitrates can be derived from their deltas.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from callquality.quality.metrics import (
    VIDEO_RESOLUTIONS,
    MetricSample,
    VideoResolution,
    compute_bitrate,
    safe_non_negative,
)

logger = logging.getLogger(__name__)


def _counter(report: Dict[str, Any], key: str) -> float:
    """Numeric report field; absent, null or non-numeric values read as 0."""
    return safe_non_negative(report.get(key)) or 0.0


@dataclass
class StreamCounter:
    """Last cumulative byte counter seen for one stream."""
    total_bytes: float
    timestamp: float


class StatsReportParser:
    """
    Derives MetricSamples from raw stats reports.

    Reports are dicts carrying a "type" key: "inbound-rtp", "outbound-rtp",
    "candidate-pair", "local-candidate" or "remote-candidate". Durations
    (jitter, round-trip time) are in seconds and bitrates in bps, as the
    transport reports them.
    """

    def __init__(self, include_video: bool = True):
        self._include_video = include_video
        self._counters: Dict[str, StreamCounter] = {}
        self._last_bitrate: Optional[float] = None

    def reset(self) -> None:
        """Forget byte counters, e.g. after the connection was replaced."""
        self._counters.clear()
        self._last_bitrate = None

    def parse(self, reports: List[Dict[str, Any]], timestamp: float) -> MetricSample:
        """
        Build a sample from one snapshot.

        Args:
            reports: Raw stats reports for the connection
            timestamp: Snapshot time in seconds since the epoch

        Returns:
            MetricSample with every derivable field populated
        """
        streams = self._select_streams(reports)
        pair = self._select_candidate_pair(reports)

        sample = MetricSample(
            timestamp=datetime.fromtimestamp(timestamp, tz=timezone.utc),
        )

        audio_in = streams.get("inbound-audio")
        if audio_in is not None:
            sample.packet_loss = self._loss_percent(audio_in)
            sample.audio_packet_loss = sample.packet_loss
            sample.jitter = _counter(audio_in, "jitter") * 1000

        video_in = streams.get("inbound-video")
        if video_in is not None:
            self._apply_video(sample, video_in)

        sample.audio_only = "inbound-video" not in streams and "outbound-video" not in streams
        if "outbound-audio" in streams or "outbound-video" in streams:
            sample.video_enabled = "outbound-video" in streams

        rates = {}
        for key, report in streams.items():
            counter = "bytesReceived" if key.startswith("inbound") else "bytesSent"
            rate = self._stream_bitrate(key, _counter(report, counter), timestamp)
            if rate is not None:
                rates[key] = rate

        if rates:
            total = sum(rates.values())
            sample.bitrate = total
            sample.previous_bitrate = self._last_bitrate
            self._last_bitrate = total

            sent = [rates[k] for k in ("outbound-audio", "outbound-video") if k in rates]
            if sent:
                sample.current_bitrate = sum(sent) / 1000
            if "outbound-audio" in rates:
                sample.audio_bitrate = rates["outbound-audio"] / 1000

        if pair is not None:
            self._apply_candidate_pair(sample, pair, reports)

        return sample

    def _select_streams(self, reports: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        streams = {}
        for report in reports:
            if not isinstance(report, dict):
                logger.debug(f"Skipping malformed stats report: {report!r}")
                continue
            rtype = report.get("type")
            kind = report.get("kind")
            if rtype not in ("inbound-rtp", "outbound-rtp") or kind not in ("audio", "video"):
                continue
            if kind == "video" and not self._include_video:
                continue
            direction = "inbound" if rtype == "inbound-rtp" else "outbound"
            streams[f"{direction}-{kind}"] = report
        return streams

    @staticmethod
    def _select_candidate_pair(reports: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        pair = None
        for report in reports:
            if not isinstance(report, dict):
                continue
            if report.get("type") != "candidate-pair" or report.get("state") != "succeeded":
                continue
            # Prefer the nominated pair, otherwise the first succeeded one
            if report.get("nominated") or pair is None:
                pair = report
        return pair

    def _apply_video(self, sample: MetricSample, report: Dict[str, Any]) -> None:
        sample.video_packet_loss = self._loss_percent(report)

        fps = report.get("framesPerSecond")
        if fps is not None:
            sample.framerate = safe_non_negative(fps)

        width, height = report.get("frameWidth"), report.get("frameHeight")
        if width and height:
            try:
                sample.resolution = self._resolution(int(width), int(height))
            except (TypeError, ValueError):
                logger.debug(f"Ignoring invalid frame size: {width!r}x{height!r}")

        if report.get("freezeCount") is not None:
            sample.freeze_count = int(safe_non_negative(report["freezeCount"]))

    @staticmethod
    def _apply_candidate_pair(
        sample: MetricSample,
        pair: Dict[str, Any],
        reports: List[Dict[str, Any]],
    ) -> None:
        rtt = pair.get("currentRoundTripTime")
        if rtt is not None:
            sample.rtt = safe_non_negative(rtt) * 1000

        available = pair.get("availableOutgoingBitrate")
        if available is not None:
            sample.available_bitrate = safe_non_negative(available) / 1000

        local_id = pair.get("localCandidateId")
        local = next(
            (r for r in reports if isinstance(r, dict) and r.get("id") == local_id),
            {},
        )
        sample.candidate_type = local.get("candidateType", "host")

    @staticmethod
    def _loss_percent(report: Dict[str, Any]) -> float:
        lost = _counter(report, "packetsLost")
        received = _counter(report, "packetsReceived")
        total = lost + received
        return lost / total * 100 if total > 0 else 0.0

    @staticmethod
    def _resolution(width: int, height: int) -> VideoResolution:
        for res in VIDEO_RESOLUTIONS:
            if res.width == width and res.height == height:
                return res
        return VideoResolution(width, height, f"{height}p")

    def _stream_bitrate(self, key: str, total_bytes: float, timestamp: float) -> Optional[float]:
        previous = self._counters.get(key)
        self._counters[key] = StreamCounter(total_bytes=total_bytes, timestamp=timestamp)
        if previous is None:
            return None
        return compute_bitrate(total_bytes, previous.total_bytes, timestamp - previous.timestamp)
