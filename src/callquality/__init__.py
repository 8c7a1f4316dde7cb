"""
CallQuality - Call Quality Monitoring & Adaptation Engine

Continuously assesses the health of a live audio/video connection and
turns raw transport counters into actionable signals:
- Perceptual quality (MOS) and a composite 0-100 score
- Quality trend direction
- Threshold alerts
- Bandwidth, resolution and framerate recommendations
"""

__version__ = "1.0.0-dev"
__author__ = "CallQuality Team"

from callquality.core.config import Config, load_config
from callquality.quality.engine import QualityEngine
from callquality.quality.metrics import MetricSample
from callquality.service import CallQualityService

__all__ = [
    "Config",
    "load_config",
    "QualityEngine",
    "MetricSample",
    "CallQualityService",
    "__version__",
]
