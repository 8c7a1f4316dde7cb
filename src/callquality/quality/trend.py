"""
Quality trend analysis for CallQuality.

Keeps a bounded history of overall scores and fits a linear regression
over it to report whether call quality is improving or declining.
"""

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Deque, Iterator, List, Optional

import numpy as np

from callquality.quality.metrics import clamp
from callquality.quality.scoring import QualityScore

logger = logging.getLogger(__name__)

# Minimum history entries for a regression-based trend
MIN_TREND_ENTRIES = 3

# Score points per sample below which a trend counts as stable
TREND_STABILITY_THRESHOLD = 0.5

# Confidence reported when there are too few entries for a regression
LOW_CONFIDENCE = 0.3

DEFAULT_HISTORY_SIZE = 10


class TrendDirection(Enum):
    """Direction of quality change."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass
class QualityTrend:
    """Quality trend over recent history."""
    direction: TrendDirection
    rate: float  # score points per sample interval
    confidence: float  # 0-1

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "rate": self.rate,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class HistoryEntry:
    score: float
    timestamp: datetime


class HistoryBuffer:
    """Fixed-capacity FIFO of history entries; the oldest entry is evicted on overflow."""

    def __init__(self, max_size: int = DEFAULT_HISTORY_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._entries: Deque[HistoryEntry] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._entries.maxlen

    def push(self, entry: HistoryEntry) -> None:
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def scores(self) -> List[float]:
        return [entry.score for entry in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(list(self._entries))


def _direction(rate: float) -> TrendDirection:
    if rate > TREND_STABILITY_THRESHOLD:
        return TrendDirection.IMPROVING
    if rate < -TREND_STABILITY_THRESHOLD:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def calculate_trend(scores: List[float]) -> Optional[QualityTrend]:
    """
    Derive a trend from a chronological list of overall scores.

    Args:
        scores: Overall scores, oldest first

    Returns:
        QualityTrend, or None with fewer than two scores
    """
    n = len(scores)
    if n < 2:
        return None

    if n < MIN_TREND_ENTRIES:
        rate = (scores[-1] - scores[0]) / (n - 1)
        return QualityTrend(direction=_direction(rate), rate=rate, confidence=LOW_CONFIDENCE)

    x = np.arange(n, dtype=float)
    y = np.asarray(scores, dtype=float)

    x_dev = x - x.mean()
    y_dev = y - y.mean()
    ss_tot = float(np.dot(y_dev, y_dev))

    if ss_tot == 0:
        # Identical scores: no variance to fit
        return QualityTrend(direction=TrendDirection.STABLE, rate=0.0, confidence=0.0)

    slope = float(np.dot(x_dev, y_dev) / np.dot(x_dev, x_dev))
    residuals = y_dev - slope * x_dev
    ss_res = float(np.dot(residuals, residuals))

    r_squared = 1 - ss_res / ss_tot
    # Scale confidence down for small sample counts
    confidence = clamp(r_squared * (n / 10), 0, 1)

    return QualityTrend(direction=_direction(slope), rate=slope, confidence=confidence)


class TrendAnalyzer:
    """Owns the score history and the trend derived from it."""

    def __init__(self, history_size: int = DEFAULT_HISTORY_SIZE, enabled: bool = True):
        self._history = HistoryBuffer(history_size)
        self._enabled = enabled
        self._trend: Optional[QualityTrend] = None

    @property
    def trend(self) -> Optional[QualityTrend]:
        return self._trend

    @property
    def history(self) -> List[HistoryEntry]:
        return list(self._history)

    def add(self, score: QualityScore) -> Optional[QualityTrend]:
        self._history.push(HistoryEntry(score=score.overall, timestamp=score.timestamp))
        if self._enabled:
            self._trend = calculate_trend(self._history.scores())
            if self._trend is not None:
                logger.debug(
                    f"Trend {self._trend.direction.value} "
                    f"(rate={self._trend.rate:.2f}, confidence={self._trend.confidence:.2f})"
                )
        return self._trend

    def reset(self) -> None:
        self._history.clear()
        self._trend = None
