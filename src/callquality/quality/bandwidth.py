"""
Bandwidth adaptation advice for CallQuality.

Analyzes available bandwidth, packet loss, RTT and degradation events to
recommend resolution, framerate and bitrate adjustments. Recommendations
are advisory only; nothing here touches the media pipeline.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from callquality.quality.metrics import (
    MetricSample,
    VideoResolution,
    clamp,
    find_higher_resolution,
    find_lower_resolution,
    safe_non_negative,
)

logger = logging.getLogger(__name__)

# Bandwidth ratio (available / current) bands
RATIO_UPGRADE = 2.0
RATIO_MAINTAIN = 0.8
RATIO_DOWNGRADE = 0.5
RATIO_CRITICAL = 0.15

# (threshold, contribution), worst first
PACKET_LOSS_SEVERITY = (
    (8.0, 1.0),   # critical
    (5.0, 0.7),   # poor
    (3.0, 0.5),   # fair
    (1.5, 0.3),   # good
    (0.5, 0.15),  # excellent
)

RTT_SEVERITY = (
    (500.0, 1.0),
    (350.0, 0.7),
    (200.0, 0.5),
    (100.0, 0.3),
)

# Multiplier applied to each successive suggestion's impact
DIMINISHING_RETURNS = 0.6


class BandwidthAction(Enum):
    """Recommended adaptation action."""
    UPGRADE = "upgrade"
    MAINTAIN = "maintain"
    DOWNGRADE = "downgrade"
    CRITICAL = "critical"


class RecommendationPriority(Enum):
    """Priority of a recommendation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SuggestionType(Enum):
    """Area a suggestion applies to."""
    VIDEO = "video"
    AUDIO = "audio"
    NETWORK = "network"
    CODEC = "codec"


@dataclass
class AdaptationSuggestion:
    """One concrete adaptation step."""
    type: SuggestionType
    message: str
    current: str
    recommended: str
    impact: int  # 0-100

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "message": self.message,
            "current": self.current,
            "recommended": self.recommended,
            "impact": self.impact,
        }


@dataclass
class BandwidthRecommendation:
    """Bandwidth adaptation recommendation."""
    action: BandwidthAction = BandwidthAction.MAINTAIN
    suggestions: List[AdaptationSuggestion] = field(default_factory=list)
    priority: RecommendationPriority = RecommendationPriority.LOW
    estimated_improvement: int = 0
    severity: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "action": self.action.value,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "priority": self.priority.value,
            "estimated_improvement": self.estimated_improvement,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class BandwidthConstraints:
    """Adaptation constraints (bitrates in kbps)."""
    min_video_bitrate: float = 100
    max_video_bitrate: float = 2500
    min_audio_bitrate: float = 16
    max_audio_bitrate: float = 128
    target_framerate: float = 30
    min_framerate: float = 15
    min_resolution: VideoResolution = VideoResolution(426, 240, "240p")
    preferred_resolution: VideoResolution = VideoResolution(1280, 720, "720p")


RecommendationCallback = Callable[[BandwidthRecommendation], None]


def _banded(value: float, bands) -> Optional[float]:
    for threshold, contribution in bands:
        if value >= threshold:
            return contribution
    return None


def calculate_severity(sample: MetricSample, sensitivity: float = 0.5) -> float:
    """
    Blend per-signal distress contributions into a 0-1 severity.

    60% of the worst contribution plus 40% of their mean, scaled by
    (0.5 + sensitivity * 0.5).
    """
    contributions: List[float] = []

    if sample.available_bitrate is not None and sample.current_bitrate is not None:
        available = safe_non_negative(sample.available_bitrate)
        current = safe_non_negative(sample.current_bitrate)
        if current > 0:
            ratio = available / current
        else:
            ratio = 2.0 if available > 0 else 0.0

        if ratio <= RATIO_CRITICAL:
            contributions.append(1.0)
        elif ratio <= RATIO_DOWNGRADE:
            contributions.append(0.7)
        elif ratio <= RATIO_MAINTAIN:
            contributions.append(0.4)

    if sample.packet_loss is not None:
        contribution = _banded(safe_non_negative(sample.packet_loss), PACKET_LOSS_SEVERITY)
        if contribution is not None:
            contributions.append(contribution)

    if sample.rtt is not None:
        contribution = _banded(safe_non_negative(sample.rtt), RTT_SEVERITY)
        if contribution is not None:
            contributions.append(contribution)

    if sample.degradation_events:
        contributions.append(min(sample.degradation_events * 0.1, 0.5))

    if not contributions:
        return 0.0

    worst = max(contributions)
    mean = sum(contributions) / len(contributions)
    base = worst * 0.6 + mean * 0.4

    return base * (0.5 + sensitivity * 0.5)


def determine_action(sample: MetricSample, severity: float) -> BandwidthAction:
    if severity >= 0.7:
        return BandwidthAction.CRITICAL

    # Missing bandwidth figures are not evidence of a dead link
    if sample.available_bitrate is not None and sample.current_bitrate is not None:
        if sample.available_bitrate == 0 and sample.current_bitrate == 0:
            return BandwidthAction.CRITICAL

    available = safe_non_negative(sample.available_bitrate) or 0.0
    current = safe_non_negative(sample.current_bitrate) or 0.0

    if severity >= 0.4:
        return BandwidthAction.DOWNGRADE

    if available > 0 and current > 0 and available / current >= RATIO_UPGRADE and severity < 0.2:
        return BandwidthAction.UPGRADE

    return BandwidthAction.MAINTAIN


def determine_priority(severity: float, action: BandwidthAction) -> RecommendationPriority:
    if action == BandwidthAction.CRITICAL or severity >= 0.7:
        return RecommendationPriority.CRITICAL
    if severity >= 0.4:
        return RecommendationPriority.HIGH
    if severity >= 0.25:
        return RecommendationPriority.MEDIUM
    return RecommendationPriority.LOW


def estimate_improvement(suggestions: List[AdaptationSuggestion], action: BandwidthAction) -> int:
    """Sum impacts with diminishing returns, capped at 100."""
    if action == BandwidthAction.MAINTAIN or not suggestions:
        return 0

    improvement = 0.0
    factor = 1.0
    for suggestion in suggestions:
        improvement += suggestion.impact * factor
        factor *= DIMINISHING_RETURNS

    return min(100, round(improvement))


def _fmt(value: float) -> str:
    return f"{value:g}"


class BandwidthAdvisor:
    """Turns network samples into bandwidth adaptation recommendations."""

    def __init__(
        self,
        constraints: Optional[BandwidthConstraints] = None,
        sensitivity: float = 0.5,
        history_size: int = 5,
    ):
        """
        Initialize the advisor.

        Args:
            constraints: Adaptation constraints
            sensitivity: 0-1, higher reacts more strongly
            history_size: Samples averaged for packet loss and RTT smoothing
        """
        self._default_constraints = constraints or BandwidthConstraints()
        self._constraints = replace(self._default_constraints)
        self._sensitivity = clamp(sensitivity, 0, 1)
        self._history: Deque[MetricSample] = deque(maxlen=history_size)
        self._recommendation = BandwidthRecommendation()
        self._on_recommendation: List[RecommendationCallback] = []

    @property
    def recommendation(self) -> BandwidthRecommendation:
        return self._recommendation

    @property
    def constraints(self) -> BandwidthConstraints:
        return self._constraints

    @property
    def sensitivity(self) -> float:
        return self._sensitivity

    def set_constraints(self, **changes) -> None:
        """Update a subset of the constraints."""
        self._constraints = replace(self._constraints, **changes)

    def on_recommendation(self, callback: RecommendationCallback) -> Callable[[], None]:
        """Register callback for new recommendations. Returns an unsubscribe function."""
        self._on_recommendation.append(callback)

        def unsubscribe() -> None:
            if callback in self._on_recommendation:
                self._on_recommendation.remove(callback)

        return unsubscribe

    @staticmethod
    def _has_metrics(sample: MetricSample) -> bool:
        return any(
            v is not None
            for v in (
                sample.available_bitrate,
                sample.current_bitrate,
                sample.packet_loss,
                sample.rtt,
                sample.degradation_events,
            )
        )

    def _smoothed(self) -> MetricSample:
        """Most recent sample with packet loss and RTT averaged over history."""
        recent = self._history[-1]
        losses = [s.packet_loss for s in self._history if s.packet_loss is not None]
        rtts = [s.rtt for s in self._history if s.rtt is not None]
        return replace(
            recent,
            packet_loss=sum(losses) / len(losses) if losses else recent.packet_loss,
            rtt=sum(rtts) / len(rtts) if rtts else recent.rtt,
        )

    def update(self, sample: MetricSample) -> BandwidthRecommendation:
        """
        Recompute the recommendation for a new sample.

        Samples with no bandwidth-relevant metric keep the current
        recommendation and only refresh its timestamp.
        """
        if not self._has_metrics(sample):
            self._recommendation = replace(
                self._recommendation, timestamp=datetime.now(timezone.utc)
            )
            return self._recommendation

        self._history.append(sample)
        smoothed = self._smoothed()

        severity = calculate_severity(smoothed, self._sensitivity)
        action = determine_action(smoothed, severity)
        priority = determine_priority(severity, action)
        suggestions = self.generate_suggestions(sample, action)

        recommendation = BandwidthRecommendation(
            action=action,
            suggestions=suggestions,
            priority=priority,
            estimated_improvement=estimate_improvement(suggestions, action),
            severity=round(severity, 4),
        )

        if recommendation.action != self._recommendation.action:
            logger.info(
                f"Bandwidth recommendation: {self._recommendation.action.value} -> "
                f"{recommendation.action.value} (severity={severity:.2f})"
            )

        self._recommendation = recommendation
        self._emit(recommendation)
        return recommendation

    def generate_suggestions(
        self,
        sample: MetricSample,
        action: BandwidthAction,
    ) -> List[AdaptationSuggestion]:
        """Action-conditioned suggestions, highest impact first."""
        suggestions: List[AdaptationSuggestion] = []

        if action == BandwidthAction.MAINTAIN:
            return suggestions

        c = self._constraints
        video_enabled = sample.video_enabled is not False
        available = safe_non_negative(sample.available_bitrate) or 0.0
        degrading = action in (BandwidthAction.DOWNGRADE, BandwidthAction.CRITICAL)

        if video_enabled:
            if 0 < available < c.min_video_bitrate:
                suggestions.append(AdaptationSuggestion(
                    type=SuggestionType.VIDEO,
                    message="Disable video - insufficient bandwidth for minimum quality",
                    current="Video enabled",
                    recommended="Audio only",
                    impact=75,
                ))
            elif action == BandwidthAction.CRITICAL:
                suggestions.append(AdaptationSuggestion(
                    type=SuggestionType.VIDEO,
                    message="Disable video and switch to audio-only call",
                    current="Video enabled",
                    recommended="Audio only",
                    impact=80,
                ))
            elif action == BandwidthAction.DOWNGRADE:
                suggestions.extend(self._downgrade_video(sample))
            elif action == BandwidthAction.UPGRADE and sample.resolution is not None:
                higher = find_higher_resolution(sample.resolution)
                if higher is not None:
                    suggestions.append(AdaptationSuggestion(
                        type=SuggestionType.VIDEO,
                        message=(
                            f"Increase video resolution from {sample.resolution.label} "
                            f"to {higher.label}"
                        ),
                        current=sample.resolution.label,
                        recommended=higher.label,
                        impact=40,
                    ))

        audio_bitrate = sample.audio_bitrate
        if degrading and audio_bitrate is not None and audio_bitrate > c.min_audio_bitrate:
            target = max(c.min_audio_bitrate, int(audio_bitrate * 0.5))
            if target < audio_bitrate:
                suggestions.append(AdaptationSuggestion(
                    type=SuggestionType.AUDIO,
                    message=(
                        f"Reduce audio bitrate from {_fmt(audio_bitrate)}kbps "
                        f"to {_fmt(target)}kbps"
                    ),
                    current=f"{_fmt(audio_bitrate)}kbps",
                    recommended=f"{_fmt(target)}kbps",
                    impact=20,
                ))

        suggestions.sort(key=lambda s: s.impact, reverse=True)
        return suggestions

    def _downgrade_video(self, sample: MetricSample) -> List[AdaptationSuggestion]:
        c = self._constraints
        suggestions = []

        if sample.resolution is not None:
            lower = find_lower_resolution(sample.resolution)
            if lower is not None:
                suggestions.append(AdaptationSuggestion(
                    type=SuggestionType.VIDEO,
                    message=(
                        f"Reduce video resolution from {sample.resolution.label} "
                        f"to {lower.label}"
                    ),
                    current=sample.resolution.label,
                    recommended=lower.label,
                    impact=50,
                ))

        fps = sample.framerate
        if fps and fps > c.min_framerate:
            target = max(c.min_framerate, int(fps * 0.6))
            suggestions.append(AdaptationSuggestion(
                type=SuggestionType.VIDEO,
                message=f"Reduce framerate from {_fmt(fps)}fps to {_fmt(target)}fps",
                current=f"{_fmt(fps)}fps",
                recommended=f"{_fmt(target)}fps",
                impact=30,
            ))

        return suggestions

    def _emit(self, recommendation: BandwidthRecommendation) -> None:
        for callback in list(self._on_recommendation):
            try:
                callback(recommendation)
            except Exception as e:
                logger.error(f"Recommendation callback error: {e}")

    def reset(self) -> None:
        """Back to default constraints, empty history and a maintain recommendation."""
        self._constraints = replace(self._default_constraints)
        self._history.clear()
        self._recommendation = BandwidthRecommendation()
