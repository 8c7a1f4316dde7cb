"""
Pytest configuration and shared fixtures for CallQuality tests.
"""

import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from callquality.quality.metrics import MetricSample, VIDEO_RESOLUTIONS  # noqa: E402


# ============================================================================
# Temporary Directory Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_config_file(temp_dir: Path) -> Path:
    """Create a temporary config file."""
    config_path = temp_dir / "config.yaml"
    config_path.write_text("""
version: 1
update_interval: 0.5
history_size: 20
weights:
  packet_loss: 0.3
  jitter: 0.1
  rtt: 0.2
  mos: 0.25
  bitrate_stability: 0.15
thresholds:
  packet_loss_warning: 2.0
  packet_loss_critical: 8.0
bandwidth:
  sensitivity: 0.8
""")
    return config_path


# ============================================================================
# Metric Sample Fixtures
# ============================================================================

@pytest.fixture
def base_time() -> datetime:
    """Fixed reference time for timestamped samples."""
    return datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def excellent_sample(base_time) -> MetricSample:
    """A sample from a healthy connection."""
    return MetricSample(
        packet_loss=0.3,
        jitter=8,
        rtt=40,
        mos=4.4,
        timestamp=base_time,
    )


@pytest.fixture
def degraded_sample(base_time) -> MetricSample:
    """A sample from a struggling connection."""
    return MetricSample(
        packet_loss=6,
        jitter=90,
        rtt=420,
        timestamp=base_time + timedelta(seconds=1),
    )


@pytest.fixture
def video_sample(base_time) -> MetricSample:
    """A sample from a healthy video call."""
    return MetricSample(
        packet_loss=0.2,
        jitter=5,
        rtt=30,
        mos=4.4,
        bitrate=1_500_000,
        previous_bitrate=1_480_000,
        resolution=VIDEO_RESOLUTIONS[1],
        framerate=30,
        target_framerate=30,
        freeze_count=0,
        video_packet_loss=0.1,
        available_bitrate=4000,
        current_bitrate=1500,
        audio_bitrate=64,
        video_enabled=True,
        candidate_type="host",
        timestamp=base_time,
    )


@pytest.fixture
def sample_stats_reports():
    """Return a raw stats snapshot for an audio/video connection."""
    return [
        {
            "id": "in-audio",
            "type": "inbound-rtp",
            "kind": "audio",
            "packetsLost": 2,
            "packetsReceived": 198,
            "jitter": 0.012,
            "bytesReceived": 10_000,
        },
        {
            "id": "in-video",
            "type": "inbound-rtp",
            "kind": "video",
            "packetsLost": 0,
            "packetsReceived": 500,
            "framesPerSecond": 30,
            "frameWidth": 1280,
            "frameHeight": 720,
            "freezeCount": 1,
            "bytesReceived": 100_000,
        },
        {
            "id": "out-audio",
            "type": "outbound-rtp",
            "kind": "audio",
            "bytesSent": 8_000,
        },
        {
            "id": "out-video",
            "type": "outbound-rtp",
            "kind": "video",
            "bytesSent": 90_000,
        },
        {
            "id": "pair-1",
            "type": "candidate-pair",
            "state": "succeeded",
            "nominated": True,
            "currentRoundTripTime": 0.045,
            "availableOutgoingBitrate": 2_500_000,
            "localCandidateId": "local-1",
        },
        {
            "id": "local-1",
            "type": "local-candidate",
            "candidateType": "srflx",
        },
    ]


# ============================================================================
# Clean Environment Fixture
# ============================================================================

@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Ensure clean environment for each test."""
    # Remove any CallQuality-specific env vars that might interfere
    for key in list(os.environ.keys()):
        if key.startswith("CALLQUALITY_"):
            monkeypatch.delenv(key, raising=False)
