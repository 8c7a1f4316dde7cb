"""
MOS Estimator - Simplified E-model (ITU-T G.107)

Estimates Mean Opinion Score (MOS) from network quality metrics:
- Packet loss percentage
- Jitter (ms)
- Round-trip time (ms)

MOS scale: 1.0 (bad) to 4.5 (excellent)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from callquality.quality.metrics import clamp, safe_non_negative

logger = logging.getLogger(__name__)

# Base R-factor with no impairments
R_BASE = 93.2

# One-way delay beyond which the delay impairment steepens (ms)
DELAY_KNEE_MS = 177.3


def _heaviside(x: float) -> float:
    return 0.0 if x < 0 else 1.0


def r_factor(packet_loss: float = 0.0, jitter_ms: float = 0.0, rtt_ms: float = 0.0) -> float:
    """
    Compute the transmission rating factor R (0-100).

    Args:
        packet_loss: Packet loss percentage (0-100)
        jitter_ms: Jitter in milliseconds
        rtt_ms: Round-trip time in milliseconds

    Returns:
        R-factor clamped to 0-100
    """
    packet_loss = safe_non_negative(packet_loss) or 0.0
    jitter_ms = safe_non_negative(jitter_ms) or 0.0
    rtt_ms = safe_non_negative(rtt_ms) or 0.0

    # One-way delay approximation
    d = rtt_ms / 2.0 + jitter_ms

    # Delay impairment (Id)
    Id = 0.024 * d + 0.11 * (d - DELAY_KNEE_MS) * _heaviside(d - DELAY_KNEE_MS)

    # Equipment impairment (Ie) from packet loss
    Ie = packet_loss * 2.5 + packet_loss * packet_loss * 0.1

    return clamp(R_BASE - Id - Ie, 0, 100)


def r_to_mos(R: float) -> float:
    """Convert an R-factor to MOS, rounded to one decimal."""
    if R < 0:
        mos = 1.0
    elif R > 100:
        mos = 4.5
    else:
        mos = 1 + 0.035 * R + 7e-6 * R * (R - 60) * (100 - R)
    return round(mos, 1)


def estimate_mos(packet_loss: float = 0.0, jitter_ms: float = 0.0, rtt_ms: float = 0.0) -> float:
    """
    Estimate MOS using the simplified E-model.

    Args:
        packet_loss: Packet loss percentage (0-100)
        jitter_ms: Jitter in milliseconds
        rtt_ms: Round-trip time in milliseconds

    Returns:
        MOS score (1.0-4.5)
    """
    return r_to_mos(r_factor(packet_loss, jitter_ms, rtt_ms))


def mos_quality_label(mos: float) -> str:
    if mos >= 4.3:
        return "excellent"
    if mos >= 4.0:
        return "good"
    if mos >= 3.6:
        return "fair"
    if mos >= 3.1:
        return "poor"
    return "bad"


@dataclass
class MosScore:
    """An estimated MOS value with its quality label."""
    value: float
    quality: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "quality": self.quality,
            "timestamp": self.timestamp.isoformat(),
        }


def calculate_mos_score(packet_loss: float = 0.0, jitter_ms: float = 0.0, rtt_ms: float = 0.0) -> MosScore:
    value = estimate_mos(packet_loss, jitter_ms, rtt_ms)
    return MosScore(value=value, quality=mos_quality_label(value))
