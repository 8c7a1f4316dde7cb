"""
Composite call quality scoring for CallQuality.

Combines weighted per-metric sub-scores into an overall 0-100 score with
audio, video and network breakdowns and a letter grade.
"""

import logging
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from callquality.quality.metrics import MetricSample, clamp, safe_non_negative

logger = logging.getLogger(__name__)


class Bands(NamedTuple):
    """Upper bounds of each band; values above poor fall off towards 0."""
    excellent: float
    good: float
    fair: float
    poor: float


METRIC_THRESHOLDS = {
    "packet_loss": Bands(0.5, 1, 2, 5),
    "jitter": Bands(10, 20, 40, 80),
    "rtt": Bands(50, 100, 200, 400),
    "audio_jitter_buffer_delay": Bands(20, 40, 80, 150),
}


class QualityGrade(Enum):
    """Letter grade assigned from the overall score."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


GRADE_THRESHOLDS = (
    (QualityGrade.A, 90),
    (QualityGrade.B, 75),
    (QualityGrade.C, 60),
    (QualityGrade.D, 40),
)


def grade_for_score(score: float) -> QualityGrade:
    for grade, cutoff in GRADE_THRESHOLDS:
        if score >= cutoff:
            return grade
    return QualityGrade.F


@dataclass
class QualityWeights:
    """Weights for the overall score. Should sum to 1.0."""
    packet_loss: float = 0.25
    jitter: float = 0.15
    rtt: float = 0.20
    mos: float = 0.25
    bitrate_stability: float = 0.15

    @classmethod
    def merged(cls, overrides: Optional[Dict[str, float]] = None) -> "QualityWeights":
        """Defaults with a partial set of overrides applied."""
        weights = cls()
        for key, value in (overrides or {}).items():
            if not hasattr(weights, key):
                raise ValueError(f"Unknown weight: {key}")
            setattr(weights, key, float(value))
        return weights

    @property
    def total(self) -> float:
        return sum(asdict(self).values())

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def metric_score(value: Optional[float], bands: Bands, default: float = 100.0) -> float:
    """
    Score one lower-is-better metric on the piecewise-linear curve.

    100 up to excellent, then 100->85->65->40 across the good, fair and poor
    bands, then down to 0 at twice the poor bound.
    """
    if value is None:
        return default

    v = safe_non_negative(value)

    if v <= bands.excellent:
        return 100.0
    if v <= bands.good:
        ratio = (v - bands.excellent) / (bands.good - bands.excellent)
        return 100 - ratio * 15
    if v <= bands.fair:
        ratio = (v - bands.good) / (bands.fair - bands.good)
        return 85 - ratio * 20
    if v <= bands.poor:
        ratio = (v - bands.fair) / (bands.poor - bands.fair)
        return 65 - ratio * 25

    ratio = min(1.0, (v - bands.poor) / bands.poor) if bands.poor > 0 else 1.0
    return max(0.0, 40 - ratio * 40)


def mos_to_score(mos: Optional[float]) -> float:
    """MOS 1-5 mapped linearly onto 0-100; missing MOS does not penalize."""
    if mos is None:
        return 100.0
    return (clamp(mos, 1, 5) - 1) / 4 * 100


def bitrate_stability_score(bitrate: Optional[float], previous_bitrate: Optional[float]) -> float:
    if bitrate is None or previous_bitrate is None:
        return 100.0

    bitrate = safe_non_negative(bitrate)
    previous_bitrate = safe_non_negative(previous_bitrate)

    if previous_bitrate == 0:
        # Both zero is ambiguous rather than a failure
        return 100.0 if bitrate > 0 else 50.0

    change = abs(bitrate - previous_bitrate) / previous_bitrate

    if change <= 0.05:
        return 100.0
    if change <= 0.1:
        return 90 + (0.1 - change) * 200
    if change <= 0.5:
        return 90 - (change - 0.1) * 100
    return max(0.0, 50 - (change - 0.5) * 100)


def framerate_score(framerate: Optional[float], target: Optional[float] = None) -> float:
    if framerate is None:
        return 50.0

    target = target or 30
    ratio = safe_non_negative(framerate) / target

    if ratio >= 1:
        return 100.0
    if ratio >= 0.9:
        return 95.0
    if ratio >= 0.75:
        return 85.0
    if ratio >= 0.5:
        return 65.0
    return max(0.0, ratio * 100)


def resolution_score(width: Optional[int], height: Optional[int]) -> float:
    if width is None or height is None:
        return 50.0

    pixels = width * height

    if pixels >= 2_000_000:  # 1080p+
        return 100.0
    if pixels >= 900_000:  # 720p
        return 90.0
    if pixels >= 400_000:  # 480p
        return 75.0
    if pixels >= 200_000:  # 360p
        return 60.0
    if pixels >= 100_000:  # 240p
        return 45.0
    return max(20.0, pixels / 100_000 * 45)


def freeze_score(freeze_count: Optional[int]) -> float:
    if not freeze_count:
        return 100.0
    return max(0.0, 100 - freeze_count * 15)


@dataclass
class QualityScore:
    """Composite call quality score."""
    overall: float
    audio: float
    video: Optional[float]
    network: float
    grade: QualityGrade
    description: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall,
            "audio": self.audio,
            "video": self.video,
            "network": self.network,
            "grade": self.grade.value,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }


def _finish(value: float) -> float:
    return round(clamp(value, 0, 100), 2)


class CompositeScorer:
    """Scores samples against the configured weights."""

    def __init__(self, weights: Optional[QualityWeights] = None):
        self.weights = weights or QualityWeights()
        if abs(self.weights.total - 1.0) > 0.001:
            logger.warning(f"Quality weights sum to {self.weights.total:.3f}, expected 1.0")

    def overall_score(self, sample: MetricSample) -> float:
        w = self.weights
        return (
            metric_score(sample.packet_loss, METRIC_THRESHOLDS["packet_loss"]) * w.packet_loss
            + metric_score(sample.jitter, METRIC_THRESHOLDS["jitter"]) * w.jitter
            + metric_score(sample.rtt, METRIC_THRESHOLDS["rtt"]) * w.rtt
            + mos_to_score(sample.mos) * w.mos
            + bitrate_stability_score(sample.bitrate, sample.previous_bitrate) * w.bitrate_stability
        )

    def audio_score(self, sample: MetricSample) -> float:
        loss = sample.audio_packet_loss if sample.audio_packet_loss is not None else sample.packet_loss
        delay = (
            sample.audio_jitter_buffer_delay
            if sample.audio_jitter_buffer_delay is not None
            else sample.jitter
        )
        return (
            mos_to_score(sample.mos) * 0.5
            + metric_score(loss, METRIC_THRESHOLDS["packet_loss"]) * 0.3
            + metric_score(delay, METRIC_THRESHOLDS["audio_jitter_buffer_delay"]) * 0.2
        )

    def video_score(self, sample: MetricSample) -> Optional[float]:
        if sample.audio_only or not sample.has_video_metrics:
            return None

        res = sample.resolution
        return (
            metric_score(sample.video_packet_loss, METRIC_THRESHOLDS["packet_loss"], default=80) * 0.25
            + framerate_score(sample.framerate, sample.target_framerate) * 0.35
            + resolution_score(res.width if res else None, res.height if res else None) * 0.25
            + freeze_score(sample.freeze_count) * 0.15
        )

    def network_score(self, sample: MetricSample) -> float:
        # RTT has the highest impact on the network score
        return (
            metric_score(sample.rtt, METRIC_THRESHOLDS["rtt"]) * 0.45
            + metric_score(sample.jitter, METRIC_THRESHOLDS["jitter"]) * 0.3
            + metric_score(sample.packet_loss, METRIC_THRESHOLDS["packet_loss"]) * 0.25
        )

    def score(self, sample: MetricSample) -> QualityScore:
        """Compute the full score for one (normalized) sample."""
        overall = _finish(self.overall_score(sample))
        video = self.video_score(sample)
        network = _finish(self.network_score(sample))
        grade = grade_for_score(overall)

        return QualityScore(
            overall=overall,
            audio=_finish(self.audio_score(sample)),
            video=_finish(video) if video is not None else None,
            network=network,
            grade=grade,
            description=describe(grade, network, sample),
        )


def describe(grade: QualityGrade, network_score: float, sample: MetricSample) -> str:
    """Human-readable description, itemizing contributing factors below B."""
    loss = sample.packet_loss or 0
    jitter = sample.jitter or 0

    if grade == QualityGrade.A:
        return "Excellent call quality"
    if grade == QualityGrade.B:
        return "Good call quality"

    issues = []
    if grade == QualityGrade.C:
        if network_score < 65:
            issues.append("network latency")
        if loss > 2:
            issues.append("packet loss")
        if jitter > 40:
            issues.append("jitter")
        if issues:
            return f"Fair call quality - {', '.join(issues)} detected"
        return "Fair call quality"

    if grade == QualityGrade.D:
        if network_score < 50:
            issues.append("high network delay")
        if loss > 5:
            issues.append("significant packet loss")
        if jitter > 80:
            issues.append("high jitter")
        if issues:
            return f"Poor call quality - {', '.join(issues)}"
        return "Poor call quality"

    if network_score < 40:
        issues.append("severe network issues")
    if loss > 10:
        issues.append("critical packet loss")
    if issues:
        return f"Very poor call quality - {', '.join(issues)}"
    return "Very poor call quality - consider reconnecting"
