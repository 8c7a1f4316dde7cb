"""
Tests for callquality.quality.stats module.
"""

import copy

import pytest

from callquality.quality.stats import StatsReportParser


def _advance(reports, **deltas):
    """Copy a snapshot with byte counters advanced per report id."""
    advanced = copy.deepcopy(reports)
    for report in advanced:
        delta = deltas.get(report["id"].replace("-", "_"))
        if delta is None:
            continue
        key = "bytesReceived" if report["type"] == "inbound-rtp" else "bytesSent"
        report[key] += delta
    return advanced


class TestStatsReportParser:
    """Tests for StatsReportParser."""

    def test_audio_metrics(self, sample_stats_reports):
        """Test packet loss and jitter come from the inbound audio stream."""
        sample = StatsReportParser().parse(sample_stats_reports, 1000.0)

        assert sample.packet_loss == pytest.approx(1.0)
        assert sample.audio_packet_loss == pytest.approx(1.0)
        assert sample.jitter == pytest.approx(12.0)

    def test_video_metrics(self, sample_stats_reports):
        """Test video fields come from the inbound video stream."""
        sample = StatsReportParser().parse(sample_stats_reports, 1000.0)

        assert sample.video_packet_loss == 0.0
        assert sample.framerate == 30
        assert sample.resolution.label == "720p"
        assert sample.freeze_count == 1
        assert sample.audio_only is False
        assert sample.video_enabled is True

    def test_candidate_pair(self, sample_stats_reports):
        """Test RTT, available bandwidth and candidate type."""
        sample = StatsReportParser().parse(sample_stats_reports, 1000.0)

        assert sample.rtt == pytest.approx(45.0)
        assert sample.available_bitrate == pytest.approx(2500.0)
        assert sample.candidate_type == "srflx"

    def test_timestamp(self, sample_stats_reports):
        """Test the snapshot time becomes an aware datetime."""
        sample = StatsReportParser().parse(sample_stats_reports, 1000.0)
        assert sample.timestamp.timestamp() == 1000.0
        assert sample.timestamp.tzinfo is not None

    def test_first_snapshot_has_no_bitrate(self, sample_stats_reports):
        """Test bitrates need two snapshots."""
        sample = StatsReportParser().parse(sample_stats_reports, 1000.0)
        assert sample.bitrate is None
        assert sample.current_bitrate is None

    def test_bitrate_from_deltas(self, sample_stats_reports):
        """Test bitrates derive from byte counter deltas."""
        parser = StatsReportParser()
        parser.parse(sample_stats_reports, 1000.0)

        second = _advance(
            sample_stats_reports,
            in_audio=1_000, in_video=10_000, out_audio=4_000, out_video=100_000,
        )
        sample = parser.parse(second, 1001.0)

        assert sample.bitrate == pytest.approx(920_000)
        assert sample.previous_bitrate is None
        assert sample.current_bitrate == pytest.approx(832.0)
        assert sample.audio_bitrate == pytest.approx(32.0)

        third = _advance(second, in_audio=1_000)
        sample = parser.parse(third, 1002.0)
        assert sample.previous_bitrate == pytest.approx(920_000)
        assert sample.bitrate == pytest.approx(8_000)

    def test_counter_reset_yields_zero(self, sample_stats_reports):
        """Test a shrinking byte counter does not produce a negative bitrate."""
        parser = StatsReportParser()
        parser.parse(sample_stats_reports, 1000.0)

        reset = _advance(sample_stats_reports, in_audio=-10_000)
        sample = parser.parse(reset, 1001.0)
        assert sample.bitrate >= 0

    def test_reset_forgets_counters(self, sample_stats_reports):
        """Test reset starts bitrate tracking over."""
        parser = StatsReportParser()
        parser.parse(sample_stats_reports, 1000.0)
        parser.reset()

        sample = parser.parse(_advance(sample_stats_reports, in_audio=1_000), 1001.0)
        assert sample.bitrate is None

    def test_audio_only(self, sample_stats_reports):
        """Test a connection without video streams is audio-only."""
        audio = [r for r in sample_stats_reports if r.get("kind") != "video"]
        sample = StatsReportParser().parse(audio, 1000.0)

        assert sample.audio_only is True
        assert sample.video_enabled is False
        assert sample.framerate is None

    def test_exclude_video(self, sample_stats_reports):
        """Test video streams can be ignored."""
        sample = StatsReportParser(include_video=False).parse(sample_stats_reports, 1000.0)
        assert sample.resolution is None
        assert sample.audio_only is True

    def test_prefers_nominated_pair(self, sample_stats_reports):
        """Test the nominated succeeded pair wins over earlier ones."""
        reports = [
            {
                "id": "pair-0",
                "type": "candidate-pair",
                "state": "succeeded",
                "nominated": False,
                "currentRoundTripTime": 0.5,
            },
        ] + sample_stats_reports
        sample = StatsReportParser().parse(reports, 1000.0)
        assert sample.rtt == pytest.approx(45.0)

    def test_no_succeeded_pair(self, sample_stats_reports):
        """Test RTT is missing without a succeeded pair."""
        reports = [r for r in sample_stats_reports if r["type"] != "candidate-pair"]
        sample = StatsReportParser().parse(reports, 1000.0)

        assert sample.rtt is None
        assert sample.candidate_type is None

    def test_malformed_reports_skipped(self):
        """Test non-dict entries are ignored."""
        sample = StatsReportParser().parse([None, "garbage", 42], 1000.0)
        assert sample.has_network_metrics is False

    def test_null_and_garbage_fields(self):
        """Test null or non-numeric fields read as zero instead of raising."""
        reports = [
            {
                "id": "in-audio",
                "type": "inbound-rtp",
                "kind": "audio",
                "jitter": None,
                "packetsLost": None,
                "packetsReceived": "many",
                "bytesReceived": None,
            },
            {
                "id": "in-video",
                "type": "inbound-rtp",
                "kind": "video",
                "packetsLost": 3,
                "packetsReceived": None,
                "framesPerSecond": "fast",
                "frameWidth": "n/a",
                "frameHeight": 720,
                "freezeCount": None,
            },
            {"id": "out-audio", "type": "outbound-rtp", "kind": "audio", "bytesSent": 4_000},
        ]
        parser = StatsReportParser()
        sample = parser.parse(reports, 1000.0)

        assert sample.jitter == 0.0
        assert sample.packet_loss == 0.0
        assert sample.video_packet_loss == pytest.approx(100.0)
        assert sample.framerate == 0.0
        assert sample.resolution is None
        assert sample.freeze_count is None

        later = copy.deepcopy(reports)
        later[2]["bytesSent"] = None
        sample = parser.parse(later, 1001.0)
        assert sample.bitrate == 0.0
        assert sample.audio_bitrate == 0.0

    def test_empty_snapshot(self):
        """Test an empty snapshot yields an empty sample."""
        sample = StatsReportParser().parse([], 1000.0)

        assert sample.packet_loss is None
        assert sample.rtt is None
        assert sample.video_enabled is None
