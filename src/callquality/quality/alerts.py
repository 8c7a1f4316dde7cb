"""
Quality alerting for CallQuality.

Evaluates each sample against two-tier thresholds, keeps a bounded alert
history and notifies listeners of alerts and quality-level changes.
"""

import logging
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Deque, List, Optional

from callquality.quality.classifier import QualityLevel
from callquality.quality.metrics import MetricSample
from callquality.quality.scoring import QualityScore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ALERTS = 100


class AlertSeverity(Enum):
    """Alert severity levels."""
    WARNING = "warning"
    CRITICAL = "critical"


class AlertType(Enum):
    """Types of quality alerts."""
    HIGH_PACKET_LOSS = "high_packet_loss"
    HIGH_JITTER = "high_jitter"
    HIGH_RTT = "high_rtt"
    QUALITY_DEGRADATION = "quality_degradation"
    LOW_SCORE = "low_score"


@dataclass
class AlertThresholds:
    """Warning/critical thresholds per metric."""
    packet_loss_warning: float = 1.0
    packet_loss_critical: float = 5.0
    jitter_warning: float = 30.0
    jitter_critical: float = 100.0
    rtt_warning: float = 150.0
    rtt_critical: float = 300.0
    mos_warning: float = 3.5
    mos_critical: float = 2.5
    score_warning: float = 60.0
    score_critical: float = 40.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class QualityAlert:
    """A threshold crossing observed on one sample."""
    type: AlertType
    severity: AlertSeverity
    message: str
    value: float
    threshold: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "value": self.value,
            "threshold": self.threshold,
            "timestamp": self.timestamp.isoformat(),
        }


AlertCallback = Callable[[QualityAlert], None]
QualityChangeCallback = Callable[[QualityLevel, QualityLevel], None]


class AlertEngine:
    """Threshold alerting and level-change notification."""

    def __init__(
        self,
        thresholds: Optional[AlertThresholds] = None,
        max_alerts: int = DEFAULT_MAX_ALERTS,
    ):
        self._thresholds = thresholds or AlertThresholds()
        self._alerts: Deque[QualityAlert] = deque(maxlen=max_alerts)
        self._previous_level = QualityLevel.UNKNOWN

        # Callbacks
        self._on_alert: List[AlertCallback] = []
        self._on_quality_change: List[QualityChangeCallback] = []

    @property
    def thresholds(self) -> AlertThresholds:
        return self._thresholds

    @property
    def alerts(self) -> List[QualityAlert]:
        return list(self._alerts)

    @property
    def level(self) -> QualityLevel:
        return self._previous_level

    def set_thresholds(self, **overrides: float) -> None:
        """Update a subset of thresholds."""
        for key, value in overrides.items():
            if not hasattr(self._thresholds, key):
                raise ValueError(f"Unknown threshold: {key}")
            setattr(self._thresholds, key, float(value))

    def evaluate(
        self,
        sample: MetricSample,
        mos: Optional[float] = None,
        score: Optional[QualityScore] = None,
        level: QualityLevel = QualityLevel.UNKNOWN,
    ) -> List[QualityAlert]:
        """
        Evaluate one normalized sample.

        Args:
            sample: Normalized metric sample
            mos: MOS for the sample (supplied or estimated)
            score: Composite score for the sample
            level: Overall classifier level for the sample

        Returns:
            Alerts raised by this sample
        """
        t = self._thresholds
        new_alerts: List[QualityAlert] = []

        if sample.packet_loss is not None:
            self._check_high(
                new_alerts, AlertType.HIGH_PACKET_LOSS, sample.packet_loss,
                t.packet_loss_warning, t.packet_loss_critical,
                "packet loss", f"{sample.packet_loss:.1f}%",
            )

        if sample.jitter is not None:
            self._check_high(
                new_alerts, AlertType.HIGH_JITTER, sample.jitter,
                t.jitter_warning, t.jitter_critical,
                "jitter", f"{sample.jitter:.0f}ms",
            )

        if sample.rtt is not None:
            self._check_high(
                new_alerts, AlertType.HIGH_RTT, sample.rtt,
                t.rtt_warning, t.rtt_critical,
                "latency", f"{sample.rtt:.0f}ms",
            )

        if mos is not None:
            if mos <= t.mos_critical:
                new_alerts.append(self._alert(
                    AlertType.QUALITY_DEGRADATION, AlertSeverity.CRITICAL,
                    f"Critical call quality: MOS {mos:.1f}", mos, t.mos_critical,
                ))
            elif mos <= t.mos_warning:
                new_alerts.append(self._alert(
                    AlertType.QUALITY_DEGRADATION, AlertSeverity.WARNING,
                    f"Degraded call quality: MOS {mos:.1f}", mos, t.mos_warning,
                ))

        if score is not None:
            if score.overall < t.score_critical:
                new_alerts.append(self._alert(
                    AlertType.LOW_SCORE, AlertSeverity.CRITICAL,
                    f"Critical quality score: {score.overall:.0f}", score.overall, t.score_critical,
                ))
            elif score.overall < t.score_warning:
                new_alerts.append(self._alert(
                    AlertType.LOW_SCORE, AlertSeverity.WARNING,
                    f"Low quality score: {score.overall:.0f}", score.overall, t.score_warning,
                ))

        for alert in new_alerts:
            self._alerts.append(alert)
            logger.debug(f"Quality alert [{alert.severity.value}]: {alert.message}")
            self._emit_alert(alert)

        if level != self._previous_level:
            old_level = self._previous_level
            self._previous_level = level
            logger.info(f"Quality level changed: {old_level.value} -> {level.value}")
            self._emit_quality_change(level, old_level)

        return new_alerts

    def _check_high(
        self,
        out: List[QualityAlert],
        alert_type: AlertType,
        value: float,
        warning: float,
        critical: float,
        label: str,
        shown: str,
    ) -> None:
        if value >= critical:
            out.append(self._alert(
                alert_type, AlertSeverity.CRITICAL, f"Critical {label}: {shown}", value, critical,
            ))
        elif value >= warning:
            out.append(self._alert(
                alert_type, AlertSeverity.WARNING, f"High {label}: {shown}", value, warning,
            ))

    @staticmethod
    def _alert(
        alert_type: AlertType,
        severity: AlertSeverity,
        message: str,
        value: float,
        threshold: float,
    ) -> QualityAlert:
        return QualityAlert(
            type=alert_type,
            severity=severity,
            message=message,
            value=value,
            threshold=threshold,
        )

    # Callbacks
    def on_alert(self, callback: AlertCallback) -> Callable[[], None]:
        """Register callback for alerts. Returns an unsubscribe function."""
        self._on_alert.append(callback)
        return lambda: self._remove(self._on_alert, callback)

    def on_quality_change(self, callback: QualityChangeCallback) -> Callable[[], None]:
        """Register callback for (new_level, old_level) changes. Returns an unsubscribe function."""
        self._on_quality_change.append(callback)
        return lambda: self._remove(self._on_quality_change, callback)

    @staticmethod
    def _remove(listeners: list, callback) -> None:
        if callback in listeners:
            listeners.remove(callback)

    def _emit_alert(self, alert: QualityAlert) -> None:
        for callback in list(self._on_alert):
            try:
                callback(alert)
            except Exception as e:
                logger.error(f"Alert callback error: {e}")

    def _emit_quality_change(self, new_level: QualityLevel, old_level: QualityLevel) -> None:
        for callback in list(self._on_quality_change):
            try:
                callback(new_level, old_level)
            except Exception as e:
                logger.error(f"Quality change callback error: {e}")

    def clear_alerts(self) -> None:
        self._alerts.clear()

    def reset(self) -> None:
        """Clear alert history and forget the last level; listeners stay registered."""
        self._alerts.clear()
        self._previous_level = QualityLevel.UNKNOWN
