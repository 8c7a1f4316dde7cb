"""
Core CallQuality components.

This module contains configuration and the shared exception hierarchy.
"""

from callquality.core.config import Config, load_config, get_config_path
from callquality.core.exceptions import (
    CallQualityError,
    ConfigurationError,
    SnapshotError,
)

__all__ = [
    "Config",
    "load_config",
    "get_config_path",
    "CallQualityError",
    "ConfigurationError",
    "SnapshotError",
]
