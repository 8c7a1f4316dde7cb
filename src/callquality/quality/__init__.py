"""
Call quality monitoring and adaptation.

Turns periodic connection statistics into:
- A composite quality score with audio/video/network breakdown and grade
- A quality trend over recent history
- Threshold alerts and quality-level change notifications
- A signal-bar network indicator
- Bandwidth adaptation recommendations
"""

from callquality.quality.metrics import (
    MetricSample,
    VideoResolution,
    VIDEO_RESOLUTIONS,
    normalize_sample,
    compute_bitrate,
)
from callquality.quality.stats import StatsReportParser
from callquality.quality.classifier import (
    QualityLevel,
    NetworkThresholds,
    NetworkDetails,
    NetworkIndicator,
    NetworkQualityIndicator,
    classify,
    worst_level,
)
from callquality.quality.mos import MosScore, estimate_mos, r_factor
from callquality.quality.scoring import (
    QualityGrade,
    QualityScore,
    QualityWeights,
    CompositeScorer,
    grade_for_score,
)
from callquality.quality.trend import (
    TrendDirection,
    QualityTrend,
    HistoryBuffer,
    TrendAnalyzer,
)
from callquality.quality.alerts import (
    AlertSeverity,
    AlertType,
    AlertThresholds,
    QualityAlert,
    AlertEngine,
)
from callquality.quality.bandwidth import (
    BandwidthAction,
    RecommendationPriority,
    SuggestionType,
    AdaptationSuggestion,
    BandwidthRecommendation,
    BandwidthConstraints,
    BandwidthAdvisor,
)
from callquality.quality.engine import QualityEngine

__all__ = [
    # Metrics
    "MetricSample",
    "VideoResolution",
    "VIDEO_RESOLUTIONS",
    "normalize_sample",
    "compute_bitrate",
    "StatsReportParser",
    # Classification
    "QualityLevel",
    "NetworkThresholds",
    "NetworkDetails",
    "NetworkIndicator",
    "NetworkQualityIndicator",
    "classify",
    "worst_level",
    # MOS
    "MosScore",
    "estimate_mos",
    "r_factor",
    # Scoring
    "QualityGrade",
    "QualityScore",
    "QualityWeights",
    "CompositeScorer",
    "grade_for_score",
    # Trend
    "TrendDirection",
    "QualityTrend",
    "HistoryBuffer",
    "TrendAnalyzer",
    # Alerts
    "AlertSeverity",
    "AlertType",
    "AlertThresholds",
    "QualityAlert",
    "AlertEngine",
    # Bandwidth
    "BandwidthAction",
    "RecommendationPriority",
    "SuggestionType",
    "AdaptationSuggestion",
    "BandwidthRecommendation",
    "BandwidthConstraints",
    "BandwidthAdvisor",
    # Engine
    "QualityEngine",
]
