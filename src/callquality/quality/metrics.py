"""
Metric normalization for CallQuality.

Defines the per-tick metric sample and sanitizes raw counters into a
canonical, always non-negative metric set.
"""

import logging
import math
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VideoResolution:
    """Video resolution preset."""
    width: int
    height: int
    label: str = ""

    @property
    def pixels(self) -> int:
        return self.width * self.height

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height, "label": self.label}


# Resolution ladder, highest first
VIDEO_RESOLUTIONS: List[VideoResolution] = [
    VideoResolution(1920, 1080, "1080p"),
    VideoResolution(1280, 720, "720p"),
    VideoResolution(854, 480, "480p"),
    VideoResolution(640, 360, "360p"),
    VideoResolution(426, 240, "240p"),
]


def _ladder_index(current: VideoResolution) -> int:
    for index, res in enumerate(VIDEO_RESOLUTIONS):
        if res.width == current.width and res.height == current.height:
            return index
    return -1


def find_lower_resolution(current: VideoResolution) -> Optional[VideoResolution]:
    """Next rung down the ladder, or None at the bottom / off-ladder."""
    index = _ladder_index(current)
    if index == -1 or index == len(VIDEO_RESOLUTIONS) - 1:
        return None
    return VIDEO_RESOLUTIONS[index + 1]


def find_higher_resolution(current: VideoResolution) -> Optional[VideoResolution]:
    """Next rung up the ladder, or None at the top / off-ladder."""
    index = _ladder_index(current)
    if index <= 0:
        return None
    return VIDEO_RESOLUTIONS[index - 1]


@dataclass
class MetricSample:
    """
    One statistics snapshot, as supplied by the transport layer.

    Every field is optional. Missing values never penalize the score.
    """
    packet_loss: Optional[float] = None  # percent (0-100)
    jitter: Optional[float] = None  # ms
    rtt: Optional[float] = None  # ms
    mos: Optional[float] = None  # 1-5
    bitrate: Optional[float] = None  # bps
    previous_bitrate: Optional[float] = None  # bps
    resolution: Optional[VideoResolution] = None
    framerate: Optional[float] = None
    target_framerate: Optional[float] = None
    freeze_count: Optional[int] = None
    degradation_events: Optional[int] = None
    audio_only: bool = False

    # Per-stream metrics
    audio_packet_loss: Optional[float] = None
    video_packet_loss: Optional[float] = None
    audio_jitter_buffer_delay: Optional[float] = None  # ms

    # Bandwidth estimation (kbps)
    available_bitrate: Optional[float] = None
    current_bitrate: Optional[float] = None
    audio_bitrate: Optional[float] = None
    video_enabled: Optional[bool] = None

    candidate_type: Optional[str] = None
    timestamp: Optional[datetime] = None

    @property
    def has_network_metrics(self) -> bool:
        return any(v is not None for v in (self.rtt, self.jitter, self.packet_loss))

    @property
    def has_video_metrics(self) -> bool:
        return any(
            v is not None
            for v in (self.video_packet_loss, self.framerate, self.resolution, self.freeze_count)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, VideoResolution):
                value = value.to_dict()
            elif isinstance(value, datetime):
                value = value.isoformat()
            data[f.name] = value
        return data


# Numeric fields sanitized by normalize_sample
_NUMERIC_FIELDS = (
    "packet_loss", "jitter", "rtt", "mos", "bitrate", "previous_bitrate",
    "framerate", "target_framerate", "freeze_count", "degradation_events",
    "audio_packet_loss", "video_packet_loss", "audio_jitter_buffer_delay",
    "available_bitrate", "current_bitrate", "audio_bitrate",
)


def safe_non_negative(value: Optional[float]) -> Optional[float]:
    """Clamp a metric to a safe floor. None stays None; NaN/inf/negative become 0."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize_sample(sample: MetricSample) -> MetricSample:
    """Return a copy of the sample with every numeric field sanitized."""
    changes = {}
    for name in _NUMERIC_FIELDS:
        raw = getattr(sample, name)
        if raw is None:
            continue
        clean = safe_non_negative(raw)
        if name in ("freeze_count", "degradation_events"):
            clean = int(clean)
        if clean != raw or type(clean) is not type(raw):
            changes[name] = clean

    if changes:
        logger.debug(f"Sanitized metric fields: {sorted(changes)}")
        return replace(sample, **changes)
    return replace(sample)


def compute_bitrate(bytes_now: float, bytes_prev: float, elapsed_seconds: float) -> float:
    """Delta-based bitrate (bps) from two cumulative byte counters."""
    if elapsed_seconds <= 0:
        return 0.0
    delta = bytes_now - bytes_prev
    if delta < 0:
        # Counter reset (e.g. renegotiation)
        return 0.0
    return delta * 8 / elapsed_seconds


