"""
Call quality service for CallQuality.

Manages one quality engine per active call session and produces an
end-of-call quality report.
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from callquality.core.config import Config
from callquality.quality.alerts import AlertType, QualityAlert
from callquality.quality.engine import QualityEngine, SnapshotProvider
from callquality.quality.scoring import QualityGrade, QualityScore

logger = logging.getLogger(__name__)


@dataclass
class ScoreStatistics:
    """Running score aggregates for a whole call, kept in constant space."""
    count: int = 0
    mean: float = 0.0
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    # Sum of squared deviations from the mean (Welford)
    m2: float = 0.0
    grades: Dict[str, int] = field(default_factory=lambda: {g.value: 0 for g in QualityGrade})

    def add(self, score: QualityScore) -> None:
        value = score.overall
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self.m2 += delta * (value - self.mean)
        self.minimum = value if self.minimum is None else min(self.minimum, value)
        self.maximum = value if self.maximum is None else max(self.maximum, value)
        self.grades[score.grade.value] += 1

    @property
    def std_dev(self) -> float:
        """Sample standard deviation, 0 below two scores."""
        if self.count < 2:
            return 0.0
        return math.sqrt(self.m2 / (self.count - 1))


@dataclass
class SessionRecord:
    """Bookkeeping for one monitored session."""
    session_id: str
    engine: QualityEngine
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stats: ScoreStatistics = field(default_factory=ScoreStatistics)
    alert_counts: Counter = field(default_factory=Counter)
    unsubscribers: List[Any] = field(default_factory=list)

    def add_alert(self, alert: QualityAlert) -> None:
        self.alert_counts[alert.type] += 1


class CallQualityService:
    """High-level service for per-session call quality monitoring."""

    def __init__(self, config: Optional[Config] = None):
        self._config = config or Config()
        self._sessions: Dict[str, SessionRecord] = {}

    @property
    def sessions(self) -> List[str]:
        return list(self._sessions)

    def get_engine(self, session_id: str) -> Optional[QualityEngine]:
        record = self._sessions.get(session_id)
        return record.engine if record else None

    async def start_monitoring(
        self,
        session_id: str,
        snapshot_provider: SnapshotProvider,
    ) -> QualityEngine:
        """
        Start monitoring quality for a session.

        Starting an already monitored session returns its existing engine.
        """
        existing = self._sessions.get(session_id)
        if existing is not None:
            return existing.engine

        engine = QualityEngine(self._config, snapshot_provider)
        record = SessionRecord(session_id=session_id, engine=engine)

        # Engine keeps a bounded history; the report aggregates the whole call
        record.unsubscribers.append(engine.on_score(record.stats.add))
        record.unsubscribers.append(engine.on_alert(record.add_alert))

        self._sessions[session_id] = record
        await engine.start()
        logger.info(f"Started quality monitoring for session: {session_id}")
        return engine

    async def stop_monitoring(self, session_id: str) -> Dict[str, Any]:
        """Stop monitoring a session and return its quality report."""
        record = self._sessions.pop(session_id, None)
        if record is None:
            logger.warning(f"Session not monitored: {session_id}")
            return {}

        await record.engine.stop()
        for unsubscribe in record.unsubscribers:
            unsubscribe()

        report = self._generate_report(record)
        logger.info(f"Stopped quality monitoring for session: {session_id}")
        return report

    async def stop_all(self) -> Dict[str, Dict[str, Any]]:
        """Stop every session; returns reports keyed by session id."""
        reports = {}
        for session_id in list(self._sessions):
            reports[session_id] = await self.stop_monitoring(session_id)
        return reports

    def _generate_report(self, record: SessionRecord) -> Dict[str, Any]:
        """Generate call quality report."""
        duration = int((datetime.now(timezone.utc) - record.started_at).total_seconds())
        stats = record.stats
        if not stats.count:
            return {
                "session_id": record.session_id,
                "duration_seconds": duration,
                "sample_count": 0,
            }

        final = record.engine.score

        return {
            "session_id": record.session_id,
            "duration_seconds": duration,
            "sample_count": stats.count,
            "quality_summary": {
                "average_score": stats.mean,
                "min_score": stats.minimum,
                "max_score": stats.maximum,
                "score_std_dev": stats.std_dev,
                "final_grade": final.grade.value if final else None,
            },
            "time_in_grades": dict(stats.grades),
            "total_alerts": sum(record.alert_counts.values()),
            "alerts_by_type": {t.value: n for t, n in record.alert_counts.items()},
            "recommendations": self._generate_recommendations(set(record.alert_counts)),
        }

    @staticmethod
    def _generate_recommendations(alert_types: Set[AlertType]) -> List[str]:
        """Generate recommendations based on the alert types seen."""
        recommendations = []

        if AlertType.HIGH_RTT in alert_types:
            recommendations.append("High latency observed. A wired connection or closer access point may help.")

        if AlertType.HIGH_PACKET_LOSS in alert_types:
            recommendations.append("Packet loss observed. Check for congested or unstable links.")

        if AlertType.HIGH_JITTER in alert_types:
            recommendations.append("Jitter was high. Reduce competing traffic on the network.")

        if AlertType.QUALITY_DEGRADATION in alert_types or AlertType.LOW_SCORE in alert_types:
            recommendations.append("Call quality degraded. Consider lowering video quality.")

        if not recommendations:
            recommendations.append("Call quality was good. No specific recommendations.")

        return recommendations
