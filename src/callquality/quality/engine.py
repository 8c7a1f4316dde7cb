"""
Quality monitoring engine for CallQuality.

Wires normalization, MOS estimation, classification, scoring, trend
analysis, alerting and bandwidth advice into a single explicit update pass,
and optionally drives that pass from a periodic asyncio task.
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

from callquality.core.config import Config
from callquality.core.exceptions import SnapshotError
from callquality.quality.alerts import AlertEngine, AlertThresholds, QualityAlert
from callquality.quality.bandwidth import (
    BandwidthAdvisor,
    BandwidthConstraints,
    BandwidthRecommendation,
)
from callquality.quality.classifier import (
    NetworkIndicator,
    NetworkQualityIndicator,
    NetworkThresholds,
    QualityLevel,
)
from callquality.quality.metrics import MetricSample, normalize_sample
from callquality.quality.mos import MosScore, calculate_mos_score, mos_quality_label
from callquality.quality.scoring import CompositeScorer, QualityScore, QualityWeights
from callquality.quality.trend import HistoryEntry, QualityTrend, TrendAnalyzer

logger = logging.getLogger(__name__)

SnapshotProvider = Callable[[], Union[Optional[MetricSample], Awaitable[Optional[MetricSample]]]]


def _discard(listeners: list, callback) -> None:
    if callback in listeners:
        listeners.remove(callback)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class MetricHistoryEntry:
    """Network figures recorded for one applied sample."""
    timestamp: datetime
    mos: Optional[float]
    packet_loss: float  # percent
    jitter: float  # ms
    rtt: Optional[float]  # ms
    bitrate: float  # bps

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "mos": self.mos,
            "packet_loss": self.packet_loss,
            "jitter": self.jitter,
            "rtt": self.rtt,
            "bitrate": self.bitrate,
        }


class QualityEngine:
    """
    Quality monitoring and adaptation engine for one connection.

    Call update() with each metric sample, or supply a snapshot provider and
    start() the engine to poll it periodically. All derived state is cached
    and can be read at any time; listeners get explicit notifications.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        snapshot_provider: Optional[SnapshotProvider] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration (defaults when None)
            snapshot_provider: Callable (sync or async) returning the next
                MetricSample, or None when no snapshot is available
        """
        self._config = config or Config()
        self._provider = snapshot_provider

        c = self._config
        self._scorer = CompositeScorer(QualityWeights(**vars(c.weights)))
        self._trend = TrendAnalyzer(c.history_size, enabled=c.enable_trend_analysis)
        self._indicator = NetworkQualityIndicator(
            thresholds=NetworkThresholds(
                rtt=tuple(c.network.rtt),
                packet_loss=tuple(c.network.packet_loss),
                jitter=tuple(c.network.jitter),
            ),
            colors={QualityLevel(k): v for k, v in c.network.colors.items()},
            estimate_bandwidth=c.network.estimate_bandwidth,
        )
        self._alerts = AlertEngine(AlertThresholds(**vars(c.thresholds)), max_alerts=c.max_alerts)
        b = c.bandwidth
        self._advisor = BandwidthAdvisor(
            constraints=BandwidthConstraints(
                min_video_bitrate=b.min_video_bitrate,
                max_video_bitrate=b.max_video_bitrate,
                min_audio_bitrate=b.min_audio_bitrate,
                max_audio_bitrate=b.max_audio_bitrate,
                target_framerate=b.target_framerate,
                min_framerate=b.min_framerate,
            ),
            sensitivity=b.sensitivity,
            history_size=b.history_size,
        )

        self._score: Optional[QualityScore] = None
        self._mos: Optional[MosScore] = None
        self._last_sample_time: Optional[datetime] = None
        self._last_error: Optional[SnapshotError] = None
        self._metric_history: Deque[MetricHistoryEntry] = deque(maxlen=c.history_size)

        self._running = False
        self._task: Optional[asyncio.Task] = None
        # Bumped by stop() so in-flight snapshots can be recognised as stale
        self._generation = 0

        # Callbacks
        self._on_score: List[Callable[[QualityScore], None]] = []
        self._on_error: List[Callable[[SnapshotError], None]] = []

    # State
    @property
    def config(self) -> Config:
        return self._config

    @property
    def score(self) -> Optional[QualityScore]:
        return self._score

    @property
    def trend(self) -> Optional[QualityTrend]:
        return self._trend.trend

    @property
    def history(self) -> List[HistoryEntry]:
        return self._trend.history

    @property
    def metric_history(self) -> List[MetricHistoryEntry]:
        return list(self._metric_history)

    @property
    def avg_packet_loss(self) -> float:
        """Mean packet loss (%) over the metric history, 0 when empty."""
        if not self._metric_history:
            return 0.0
        return sum(e.packet_loss for e in self._metric_history) / len(self._metric_history)

    @property
    def avg_jitter(self) -> float:
        """Mean jitter (ms) over the metric history, 0 when empty."""
        if not self._metric_history:
            return 0.0
        return sum(e.jitter for e in self._metric_history) / len(self._metric_history)

    @property
    def avg_rtt(self) -> Optional[float]:
        """Mean RTT (ms) over entries that carried one; None if none did."""
        rtts = [e.rtt for e in self._metric_history if e.rtt is not None]
        if not rtts:
            return None
        return sum(rtts) / len(rtts)

    @property
    def current_bitrate(self) -> int:
        """Latest sample bitrate in kbps, 0 when unknown."""
        if not self._metric_history:
            return 0
        return round(self._metric_history[-1].bitrate / 1000)

    @property
    def indicator(self) -> NetworkIndicator:
        return self._indicator.indicator

    @property
    def is_available(self) -> bool:
        return self._indicator.is_available

    @property
    def level(self) -> QualityLevel:
        return self._indicator.level

    @property
    def mos(self) -> Optional[MosScore]:
        return self._mos

    @property
    def recommendation(self) -> BandwidthRecommendation:
        return self._advisor.recommendation

    @property
    def alerts(self) -> List[QualityAlert]:
        return self._alerts.alerts

    @property
    def alert_engine(self) -> AlertEngine:
        return self._alerts

    @property
    def advisor(self) -> BandwidthAdvisor:
        return self._advisor

    @property
    def last_error(self) -> Optional[SnapshotError]:
        return self._last_error

    @property
    def is_running(self) -> bool:
        return self._running

    # Update pass
    def update(self, sample: MetricSample) -> Optional[QualityScore]:
        """
        Recompute every derived value from one sample.

        Args:
            sample: Raw metric sample

        Returns:
            The new QualityScore, or the current one if the sample was
            older than the last applied sample and therefore dropped
        """
        if sample.timestamp is not None:
            sample_time = _as_utc(sample.timestamp)
            if self._last_sample_time is not None and sample_time < self._last_sample_time:
                logger.warning(
                    f"Dropping out-of-order sample from {sample_time.isoformat()} "
                    f"(last applied {self._last_sample_time.isoformat()})"
                )
                return self._score
            self._last_sample_time = sample_time

        sample = normalize_sample(sample)

        self._mos = self._resolve_mos(sample)
        self._record_metrics(sample)
        level = self._indicator.update(sample)
        score = self._scorer.score(sample)
        self._score = score
        self._trend.add(score)

        self._alerts.evaluate(
            sample,
            mos=self._mos.value if self._mos else None,
            score=score,
            level=level,
        )
        self._advisor.update(sample)

        logger.debug(
            f"Quality update: overall={score.overall} grade={score.grade.value} "
            f"level={level.value}"
        )
        self._emit_score(score)
        return score

    def _record_metrics(self, sample: MetricSample) -> None:
        self._metric_history.append(MetricHistoryEntry(
            timestamp=_as_utc(sample.timestamp or datetime.now(timezone.utc)),
            mos=self._mos.value if self._mos else None,
            packet_loss=sample.packet_loss or 0.0,
            jitter=sample.jitter or 0.0,
            rtt=sample.rtt,
            bitrate=sample.bitrate or 0.0,
        ))

    @staticmethod
    def _resolve_mos(sample: MetricSample) -> Optional[MosScore]:
        if sample.mos is not None:
            return MosScore(value=sample.mos, quality=mos_quality_label(sample.mos))
        if not sample.has_network_metrics:
            return None
        return calculate_mos_score(
            sample.packet_loss or 0.0,
            sample.jitter or 0.0,
            sample.rtt or 0.0,
        )

    # Snapshot polling
    async def tick(self) -> Optional[QualityScore]:
        """
        Pull one snapshot from the provider and apply it.

        Provider failures are recorded as last_error and reported to error
        listeners; the last known state is left untouched.
        """
        if self._provider is None:
            raise RuntimeError("No snapshot provider configured")

        generation = self._generation
        try:
            result = self._provider()
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e if isinstance(e, SnapshotError) else SnapshotError(f"Snapshot failed: {e}", e)
            self._last_error = error
            logger.error(f"Failed to acquire stats snapshot: {e}")
            self._emit_error(error)
            return None

        if generation != self._generation:
            logger.debug("Discarding snapshot that arrived after stop")
            return None

        if result is None:
            return None

        return self.update(result)

    async def start(self) -> None:
        """Start periodic polling. Starting twice is a no-op."""
        if self._running:
            return
        if self._provider is None:
            raise RuntimeError("No snapshot provider configured")

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Quality engine started (interval: {self._config.update_interval}s)")

    async def stop(self) -> None:
        """Stop polling, keeping the last known state for inspection."""
        if not self._running:
            return

        self._running = False
        self._generation += 1
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("Quality engine stopped")

    async def _poll_loop(self) -> None:
        """Main polling loop; the next tick is scheduled after the previous completes."""
        while self._running:
            try:
                await self.tick()
                await asyncio.sleep(self._config.update_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Quality update error: {e}")
                await asyncio.sleep(self._config.update_interval)

    # Callbacks
    def on_alert(self, callback: Callable[[QualityAlert], None]) -> Callable[[], None]:
        return self._alerts.on_alert(callback)

    def on_quality_change(
        self,
        callback: Callable[[QualityLevel, QualityLevel], None],
    ) -> Callable[[], None]:
        return self._alerts.on_quality_change(callback)

    def on_recommendation(
        self,
        callback: Callable[[BandwidthRecommendation], None],
    ) -> Callable[[], None]:
        return self._advisor.on_recommendation(callback)

    def on_score(self, callback: Callable[[QualityScore], None]) -> Callable[[], None]:
        self._on_score.append(callback)
        return lambda: _discard(self._on_score, callback)

    def on_error(self, callback: Callable[[SnapshotError], None]) -> Callable[[], None]:
        self._on_error.append(callback)
        return lambda: _discard(self._on_error, callback)

    def _emit_score(self, score: QualityScore) -> None:
        for callback in list(self._on_score):
            try:
                callback(score)
            except Exception as e:
                logger.error(f"Score callback error: {e}")

    def _emit_error(self, error: SnapshotError) -> None:
        for callback in list(self._on_error):
            try:
                callback(error)
            except Exception as e:
                logger.error(f"Error callback error: {e}")

    def clear_history(self) -> None:
        """Forget recorded metric samples; scores and alerts are kept."""
        self._metric_history.clear()

    def reset(self) -> None:
        """Clear history, alerts and cached values back to defaults."""
        self._score = None
        self._mos = None
        self._last_sample_time = None
        self._last_error = None
        self._trend.reset()
        self.clear_history()
        self._indicator.reset()
        self._alerts.reset()
        self._advisor.reset()

    def get_summary(self) -> Dict[str, Any]:
        """Get a snapshot of the current engine state."""
        trend = self.trend
        return {
            "running": self._running,
            "score": self._score.to_dict() if self._score else None,
            "trend": trend.to_dict() if trend else None,
            "level": self.level.value,
            "mos": self._mos.to_dict() if self._mos else None,
            "indicator": self.indicator.to_dict(),
            "recommendation": self.recommendation.to_dict(),
            "alert_count": len(self._alerts.alerts),
            "history_size": len(self.history),
            "avg_packet_loss": self.avg_packet_loss,
            "avg_jitter": self.avg_jitter,
            "avg_rtt": self.avg_rtt,
            "current_bitrate": self.current_bitrate,
            "last_error": str(self._last_error) if self._last_error else None,
        }
