"""
Tests for callquality.quality.scoring module.
"""

import pytest

from callquality.quality.metrics import MetricSample, VideoResolution
from callquality.quality.scoring import (
    METRIC_THRESHOLDS,
    CompositeScorer,
    QualityGrade,
    QualityWeights,
    bitrate_stability_score,
    describe,
    framerate_score,
    freeze_score,
    grade_for_score,
    metric_score,
    mos_to_score,
    resolution_score,
)


class TestMetricScore:
    """Tests for the piecewise metric curve."""

    @pytest.mark.parametrize("value,expected", [
        (0, 100),
        (10, 100),
        (15, 92.5),
        (20, 85),
        (30, 75),
        (40, 65),
        (60, 52.5),
        (80, 40),
        (120, 20),
        (160, 0),
        (1000, 0),
    ])
    def test_jitter_curve(self, value, expected):
        """Test jitter scores across every band."""
        assert metric_score(value, METRIC_THRESHOLDS["jitter"]) == pytest.approx(expected)

    def test_missing_value(self):
        """Test missing values score the default."""
        assert metric_score(None, METRIC_THRESHOLDS["rtt"]) == 100
        assert metric_score(None, METRIC_THRESHOLDS["rtt"], default=80) == 80

    def test_monotonic(self):
        """Test the curve never increases with the value."""
        bands = METRIC_THRESHOLDS["rtt"]
        scores = [metric_score(v, bands) for v in range(0, 1000, 5)]
        assert scores == sorted(scores, reverse=True)


class TestSubScores:
    """Tests for individual sub-scores."""

    def test_mos_to_score(self):
        """Test MOS maps linearly onto 0-100."""
        assert mos_to_score(1) == 0
        assert mos_to_score(5) == 100
        assert mos_to_score(3) == 50
        assert mos_to_score(None) == 100

    @pytest.mark.parametrize("bitrate,previous,expected", [
        (1000, 1000, 100),
        (1080, 1000, 94),
        (1300, 1000, 70),
        (2000, 1000, 0),
        (0, 0, 50),
        (500, 0, 100),
        (None, 1000, 100),
    ])
    def test_bitrate_stability(self, bitrate, previous, expected):
        """Test bitrate stability scoring."""
        assert bitrate_stability_score(bitrate, previous) == pytest.approx(expected)

    @pytest.mark.parametrize("fps,expected", [
        (None, 50),
        (30, 100),
        (28, 95),
        (24, 85),
        (15, 65),
        (6, 20),
    ])
    def test_framerate(self, fps, expected):
        """Test framerate scoring against the default target."""
        assert framerate_score(fps) == pytest.approx(expected)

    @pytest.mark.parametrize("width,height,expected", [
        (1920, 1080, 100),
        (1280, 720, 90),
        (854, 480, 75),
        (640, 360, 60),
        (426, 240, 45),
        (None, None, 50),
    ])
    def test_resolution(self, width, height, expected):
        """Test resolution scoring."""
        assert resolution_score(width, height) == expected

    def test_tiny_resolution_floor(self):
        """Test very small resolutions never drop below 20."""
        assert resolution_score(16, 16) == 20

    def test_freeze(self):
        """Test freezes cost 15 points each."""
        assert freeze_score(None) == 100
        assert freeze_score(0) == 100
        assert freeze_score(2) == 70
        assert freeze_score(10) == 0


class TestGrade:
    """Tests for grade assignment."""

    @pytest.mark.parametrize("score,grade", [
        (100, QualityGrade.A),
        (90, QualityGrade.A),
        (89.99, QualityGrade.B),
        (75, QualityGrade.B),
        (60, QualityGrade.C),
        (40, QualityGrade.D),
        (39.99, QualityGrade.F),
        (0, QualityGrade.F),
    ])
    def test_grade_boundaries(self, score, grade):
        """Test grade cutoffs are inclusive."""
        assert grade_for_score(score) == grade


class TestQualityWeights:
    """Tests for QualityWeights."""

    def test_defaults_sum_to_one(self):
        """Test default weights sum to 1.0."""
        assert QualityWeights().total == pytest.approx(1.0)

    def test_merged(self):
        """Test partial overrides keep the other defaults."""
        weights = QualityWeights.merged({"mos": 0.5})
        assert weights.mos == 0.5
        assert weights.rtt == 0.20

    def test_merged_unknown_key(self):
        """Test unknown weight names are rejected."""
        with pytest.raises(ValueError):
            QualityWeights.merged({"latency": 0.1})


class TestCompositeScorer:
    """Tests for CompositeScorer."""

    def test_excellent_call(self, excellent_sample):
        """Test a healthy call grades A."""
        score = CompositeScorer().score(excellent_sample)

        assert score.overall == pytest.approx(96.25)
        assert score.overall >= 90
        assert score.grade == QualityGrade.A
        assert score.description == "Excellent call quality"

    def test_degraded_network(self, degraded_sample):
        """Test a struggling network scores below 40."""
        score = CompositeScorer().score(degraded_sample)
        assert score.network == pytest.approx(35.6)
        assert score.network < 40

    def test_empty_sample_not_penalized(self):
        """Test missing metrics never lower the score."""
        score = CompositeScorer().score(MetricSample())

        assert score.overall == 100
        assert score.audio == 100
        assert score.network == 100
        assert score.video is None

    def test_audio_score(self, excellent_sample):
        """Test the audio breakdown."""
        assert CompositeScorer().score(excellent_sample).audio == pytest.approx(92.5)

    def test_video_score(self, video_sample):
        """Test the video breakdown."""
        assert CompositeScorer().score(video_sample).video == pytest.approx(97.5)

    def test_video_defaults(self):
        """Test video sub-score defaults for missing video fields."""
        score = CompositeScorer().score(MetricSample(framerate=30))
        assert score.video == pytest.approx(82.5)

    def test_audio_only_has_no_video(self, video_sample):
        """Test audio-only calls have no video score."""
        video_sample.audio_only = True
        assert CompositeScorer().score(video_sample).video is None

    def test_scores_bounded(self):
        """Test extreme inputs stay within 0-100."""
        sample = MetricSample(
            packet_loss=100, jitter=1000, rtt=5000, mos=1,
            bitrate=0, previous_bitrate=1000,
            resolution=VideoResolution(16, 16), framerate=0, freeze_count=50,
        )
        score = CompositeScorer().score(sample)

        for value in (score.overall, score.audio, score.video, score.network):
            assert 0 <= value <= 100
        assert score.overall == 0
        assert score.grade == QualityGrade.F

    def test_rounded(self):
        """Test scores are rounded to two decimals."""
        score = CompositeScorer().score(MetricSample(jitter=13.333, rtt=77.777))
        assert score.overall == round(score.overall, 2)

    def test_custom_weights(self):
        """Test custom weights change the overall score."""
        weights = QualityWeights(packet_loss=1.0, jitter=0, rtt=0, mos=0, bitrate_stability=0)
        score = CompositeScorer(weights).score(MetricSample(packet_loss=1.5, rtt=1000))
        assert score.overall == pytest.approx(75)

    def test_to_dict(self, excellent_sample):
        """Test score serialization."""
        data = CompositeScorer().score(excellent_sample).to_dict()
        assert data["grade"] == "A"
        assert data["video"] is None
        assert "timestamp" in data


class TestDescribe:
    """Tests for score descriptions."""

    def test_good(self):
        """Test grade B description."""
        assert describe(QualityGrade.B, 80, MetricSample()) == "Good call quality"

    def test_fair_with_issues(self):
        """Test grade C itemizes factors."""
        text = describe(QualityGrade.C, 60, MetricSample(packet_loss=3, jitter=50))
        assert text == "Fair call quality - network latency, packet loss, jitter detected"

    def test_fair_without_issues(self):
        """Test grade C without factors."""
        assert describe(QualityGrade.C, 90, MetricSample()) == "Fair call quality"

    def test_poor(self):
        """Test grade D itemizes factors."""
        text = describe(QualityGrade.D, 45, MetricSample(packet_loss=6))
        assert text == "Poor call quality - high network delay, significant packet loss"

    def test_very_poor(self):
        """Test grade F itemizes factors."""
        text = describe(QualityGrade.F, 30, MetricSample(packet_loss=12))
        assert text == "Very poor call quality - severe network issues, critical packet loss"

    def test_very_poor_without_issues(self):
        """Test grade F suggests reconnecting."""
        text = describe(QualityGrade.F, 90, MetricSample())
        assert text == "Very poor call quality - consider reconnecting"
