"""
Configuration management for CallQuality.

Handles loading, validation, and access to engine settings.
"""

import logging
import os
import yaml
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any, List
from pathlib import Path

from callquality.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Default configuration paths
CONFIG_PATHS = [
    "/etc/callquality/config.yaml",
    os.path.expanduser("~/.config/callquality/config.yaml"),
    "callquality.yaml",
]

# Environment variable naming an explicit config file
CONFIG_ENV_VAR = "CALLQUALITY_CONFIG"


@dataclass
class WeightsConfig:
    """Weights of each metric in the overall score (should sum to 1.0)."""
    packet_loss: float = 0.25
    jitter: float = 0.15
    rtt: float = 0.20
    mos: float = 0.25
    bitrate_stability: float = 0.15


@dataclass
class ThresholdsConfig:
    """Two-tier alert thresholds."""
    packet_loss_warning: float = 1.0  # percent
    packet_loss_critical: float = 5.0
    jitter_warning: float = 30.0  # ms
    jitter_critical: float = 100.0
    rtt_warning: float = 150.0  # ms
    rtt_critical: float = 300.0
    mos_warning: float = 3.5  # fires at or below
    mos_critical: float = 2.5
    score_warning: float = 60.0  # fires below
    score_critical: float = 40.0


@dataclass
class NetworkIndicatorConfig:
    """Network quality indicator configuration."""
    # [excellent, good, fair, poor]; above poor is critical
    rtt: List[float] = field(default_factory=lambda: [50, 100, 200, 400])
    packet_loss: List[float] = field(default_factory=lambda: [0.5, 1, 2, 5])
    jitter: List[float] = field(default_factory=lambda: [10, 20, 40, 80])
    colors: Dict[str, str] = field(default_factory=dict)
    estimate_bandwidth: bool = True


@dataclass
class BandwidthConfig:
    """Bandwidth advisor configuration (bitrates in kbps)."""
    sensitivity: float = 0.5  # 0-1, higher = more reactive
    history_size: int = 5
    min_video_bitrate: int = 100
    max_video_bitrate: int = 2500
    min_audio_bitrate: int = 16
    max_audio_bitrate: int = 128
    target_framerate: int = 30
    min_framerate: int = 15


@dataclass
class Config:
    """Main configuration class."""
    version: int = 1
    update_interval: float = 1.0  # seconds between ticks
    history_size: int = 10
    enable_trend_analysis: bool = True
    max_alerts: int = 100
    weights: WeightsConfig = field(default_factory=WeightsConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    network: NetworkIndicatorConfig = field(default_factory=NetworkIndicatorConfig)
    bandwidth: BandwidthConfig = field(default_factory=BandwidthConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        config = cls()

        for key in ("version", "update_interval", "history_size",
                    "enable_trend_analysis", "max_alerts"):
            if key in data:
                setattr(config, key, data[key])

        try:
            if "weights" in data:
                config.weights = WeightsConfig(**data["weights"])

            if "thresholds" in data:
                config.thresholds = ThresholdsConfig(**data["thresholds"])

            if "network" in data:
                config.network = NetworkIndicatorConfig(**data["network"])

            if "bandwidth" in data:
                config.bandwidth = BandwidthConfig(**data["bandwidth"])
        except TypeError as e:
            raise ConfigurationError(f"Unknown configuration key: {e}") from e

        config.validate()
        return config

    def validate(self) -> None:
        """Check value ranges; raises ConfigurationError."""
        if self.update_interval <= 0:
            raise ConfigurationError("update_interval must be positive")

        if self.history_size < 2:
            raise ConfigurationError("history_size must be at least 2")

        if self.max_alerts < 1:
            raise ConfigurationError("max_alerts must be at least 1")

        if not 0 <= self.bandwidth.sensitivity <= 1:
            raise ConfigurationError("bandwidth.sensitivity must be within 0-1")

        for name in ("rtt", "packet_loss", "jitter"):
            bands = getattr(self.network, name)
            if len(bands) != 4:
                raise ConfigurationError(f"network.{name} needs 4 thresholds")
            if list(bands) != sorted(bands):
                raise ConfigurationError(f"network.{name} thresholds must ascend")

        levels = {"excellent", "good", "fair", "poor", "critical", "unknown"}
        unknown = set(self.network.colors) - levels
        if unknown:
            raise ConfigurationError(f"network.colors has unknown levels: {sorted(unknown)}")

        t = self.thresholds
        if t.packet_loss_warning > t.packet_loss_critical:
            raise ConfigurationError("packet loss warning exceeds critical")
        if t.jitter_warning > t.jitter_critical:
            raise ConfigurationError("jitter warning exceeds critical")
        if t.rtt_warning > t.rtt_critical:
            raise ConfigurationError("rtt warning exceeds critical")
        if t.mos_warning < t.mos_critical:
            raise ConfigurationError("mos warning below critical")
        if t.score_warning < t.score_critical:
            raise ConfigurationError("score warning below critical")

        total = sum(asdict(self.weights).values())
        if abs(total - 1.0) > 0.001:
            logger.warning(f"Quality weights sum to {total:.3f}, expected 1.0")

    def to_dict(self) -> Dict[str, Any]:
        """Convert Config to dictionary."""
        return {
            "version": self.version,
            "update_interval": self.update_interval,
            "history_size": self.history_size,
            "enable_trend_analysis": self.enable_trend_analysis,
            "max_alerts": self.max_alerts,
            "weights": asdict(self.weights),
            "thresholds": asdict(self.thresholds),
            "network": {
                "rtt": list(self.network.rtt),
                "packet_loss": list(self.network.packet_loss),
                "jitter": list(self.network.jitter),
                "colors": dict(self.network.colors),
                "estimate_bandwidth": self.network.estimate_bandwidth,
            },
            "bandwidth": asdict(self.bandwidth),
        }

    def save(self, path: Optional[str] = None):
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATHS[0]

        # Ensure directory exists
        Path(path).parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)


def _candidate_paths(path: Optional[str]) -> List[str]:
    if path is not None:
        return [path]
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return [env_path]
    return CONFIG_PATHS


def load_config(path: Optional[str] = None) -> Config:
    """
    Load configuration from file.

    Args:
        path: Path to config file. If None, uses $CALLQUALITY_CONFIG or
            searches the default locations.

    Returns:
        Config object with loaded or default settings. Files that cannot be
        read, parsed or validated are skipped with a warning.
    """
    for config_path in _candidate_paths(path):
        if os.path.exists(config_path):
            try:
                with open(config_path) as f:
                    data = yaml.safe_load(f)
                if not data:
                    continue
                config = Config.from_dict(data)
            except (OSError, yaml.YAMLError, ConfigurationError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
                continue

            logger.info(f"Loaded configuration from {config_path}")
            return config

    # Return default config
    return Config()


def get_config_path() -> Optional[str]:
    """Get the path to the active config file."""
    for path in _candidate_paths(None):
        if os.path.exists(path):
            return path
    return None
