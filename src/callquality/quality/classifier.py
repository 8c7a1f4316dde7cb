"""
Quality classification for CallQuality.

Maps each metric to a discrete quality level through per-metric thresholds
and drives the signal-bar network indicator.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional, Sequence

from callquality.quality.metrics import MetricSample, safe_non_negative

logger = logging.getLogger(__name__)


class QualityLevel(Enum):
    """Quality level classification."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


# Lower is worse; UNKNOWN never takes part in the reduction
LEVEL_PRIORITY = {
    QualityLevel.CRITICAL: 0,
    QualityLevel.POOR: 1,
    QualityLevel.FAIR: 2,
    QualityLevel.GOOD: 3,
    QualityLevel.EXCELLENT: 4,
}

LEVEL_TO_BARS = {
    QualityLevel.EXCELLENT: 5,
    QualityLevel.GOOD: 4,
    QualityLevel.FAIR: 3,
    QualityLevel.POOR: 2,
    QualityLevel.CRITICAL: 1,
    QualityLevel.UNKNOWN: 1,
}

LEVEL_TO_ARIA = {
    QualityLevel.EXCELLENT: "Network quality: excellent connection",
    QualityLevel.GOOD: "Network quality: good connection",
    QualityLevel.FAIR: "Network quality: fair connection",
    QualityLevel.POOR: "Network quality: poor connection",
    QualityLevel.CRITICAL: "Network quality: critical - connection issues",
    QualityLevel.UNKNOWN: "Network quality: unavailable - no data",
}

DEFAULT_NETWORK_COLORS = {
    QualityLevel.EXCELLENT: "#22c55e",
    QualityLevel.GOOD: "#22c55e",
    QualityLevel.FAIR: "#eab308",
    QualityLevel.POOR: "#f97316",
    QualityLevel.CRITICAL: "#ef4444",
    QualityLevel.UNKNOWN: "#9ca3af",
}


@dataclass
class NetworkThresholds:
    """Per-metric bands [excellent, good, fair, poor]; above poor is critical."""
    rtt: Sequence[float] = (50, 100, 200, 400)
    packet_loss: Sequence[float] = (0.5, 1, 2, 5)
    jitter: Sequence[float] = (10, 20, 40, 80)


def classify(value: float, thresholds: Sequence[float]) -> QualityLevel:
    """Classify one metric value (lower is better)."""
    excellent, good, fair, poor = thresholds
    normalized = safe_non_negative(value) or 0.0

    if normalized <= excellent:
        return QualityLevel.EXCELLENT
    if normalized <= good:
        return QualityLevel.GOOD
    if normalized <= fair:
        return QualityLevel.FAIR
    if normalized <= poor:
        return QualityLevel.POOR
    return QualityLevel.CRITICAL


def worst_level(levels: Iterable[QualityLevel]) -> QualityLevel:
    """Reduce to the worst known level; UNKNOWN when nothing is known."""
    known = [level for level in levels if level != QualityLevel.UNKNOWN]
    if not known:
        return QualityLevel.UNKNOWN
    return min(known, key=LEVEL_PRIORITY.__getitem__)


def classify_sample(sample: MetricSample, thresholds: Optional[NetworkThresholds] = None) -> QualityLevel:
    """Overall level of a sample from whichever of rtt/jitter/packet loss are present."""
    t = thresholds or NetworkThresholds()
    levels = []
    if sample.rtt is not None:
        levels.append(classify(sample.rtt, t.rtt))
    if sample.jitter is not None:
        levels.append(classify(sample.jitter, t.jitter))
    if sample.packet_loss is not None:
        levels.append(classify(sample.packet_loss, t.packet_loss))
    return worst_level(levels)


@dataclass
class NetworkDetails:
    """Detailed network metrics for tooltip display."""
    rtt: float = 0
    jitter: float = 0
    packet_loss: float = 0
    bandwidth: float = 0  # kbps
    connection_type: str = "unknown"

    def to_dict(self) -> dict:
        return {
            "rtt": self.rtt,
            "jitter": self.jitter,
            "packet_loss": self.packet_loss,
            "bandwidth": self.bandwidth,
            "connection_type": self.connection_type,
        }


@dataclass
class NetworkIndicator:
    """Network quality indicator data for display."""
    level: QualityLevel = QualityLevel.UNKNOWN
    bars: int = 1
    color: str = DEFAULT_NETWORK_COLORS[QualityLevel.UNKNOWN]
    icon: str = "signal-unknown"
    aria_label: str = LEVEL_TO_ARIA[QualityLevel.UNKNOWN]
    details: NetworkDetails = field(default_factory=NetworkDetails)

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "bars": self.bars,
            "color": self.color,
            "icon": self.icon,
            "aria_label": self.aria_label,
            "details": self.details.to_dict(),
        }


class NetworkQualityIndicator:
    """Tracks the signal-bar indicator for one connection."""

    def __init__(
        self,
        thresholds: Optional[NetworkThresholds] = None,
        colors: Optional[Dict[QualityLevel, str]] = None,
        estimate_bandwidth: bool = True,
    ):
        self._thresholds = thresholds or NetworkThresholds()
        self._colors = dict(DEFAULT_NETWORK_COLORS)
        if colors:
            self._colors.update(colors)
        self._estimate_bandwidth = estimate_bandwidth

        self._level = QualityLevel.UNKNOWN
        self._details = NetworkDetails()
        self._available = False

    @property
    def level(self) -> QualityLevel:
        return self._level

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def indicator(self) -> NetworkIndicator:
        level = self._level
        return NetworkIndicator(
            level=level,
            bars=LEVEL_TO_BARS[level],
            color=self._colors[level],
            icon=f"signal-{level.value}",
            aria_label=LEVEL_TO_ARIA[level],
            details=NetworkDetails(**self._details.to_dict()),
        )

    def update(self, sample: MetricSample) -> QualityLevel:
        """Recompute level and details; absent metrics keep their last value."""
        level = classify_sample(sample, self._thresholds)
        if level != QualityLevel.UNKNOWN:
            self._available = True
        elif self._available:
            # A sample without network metrics keeps the last known level
            level = self._level

        details = self._details
        if sample.rtt is not None:
            details.rtt = safe_non_negative(sample.rtt)
        if sample.jitter is not None:
            details.jitter = safe_non_negative(sample.jitter)
        if sample.packet_loss is not None:
            details.packet_loss = safe_non_negative(sample.packet_loss)
        if sample.candidate_type is not None:
            details.connection_type = sample.candidate_type

        if sample.available_bitrate is not None:
            details.bandwidth = safe_non_negative(sample.available_bitrate)
        elif self._estimate_bandwidth and sample.bitrate is not None:
            # Available bandwidth is roughly 1.2x current usage (bps -> kbps)
            details.bandwidth = round(safe_non_negative(sample.bitrate) / 1000 * 1.2)

        self._level = level
        return level

    def reset(self) -> None:
        self._level = QualityLevel.UNKNOWN
        self._details = NetworkDetails()
        self._available = False
