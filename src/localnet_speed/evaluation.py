"""Gigabit-Ethernet evaluation of a measured transfer rate.

The theoretical ceiling is 125 MB/s, the payload rate of a 1000 Mbps link.
Rates are expressed in MB/s with 1 MB = 1,048,576 bytes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

THEORETICAL_MB_PER_S = 125.0
PRACTICAL_THRESHOLD_MB_PER_S = 100.0


class Rating(str, Enum):
    """Rating tiers, best first.

    Attributes:
        EXCELLENT: At or above the practical Gigabit threshold (100 MB/s).
        GOOD: 80 to 100 MB/s.
        FAIR: 50 to 80 MB/s.
        SLOW: 10 to 50 MB/s.
        VERY_SLOW: Below 10 MB/s.
    """

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    SLOW = "slow"
    VERY_SLOW = "very slow"


# Lower bound (inclusive) of each band, descending.
_BANDS: tuple[tuple[float, Rating, str], ...] = (
    (PRACTICAL_THRESHOLD_MB_PER_S, Rating.EXCELLENT, "Your network reaches Gigabit-class performance."),
    (80.0, Rating.GOOD, "Close to Gigabit performance, with some room for improvement."),
    (50.0, Rating.FAIR, "Average speed. Check your network equipment and link quality."),
    (10.0, Rating.SLOW, "Slow network. Some equipment on the path may not be Gigabit-capable."),
)
_VERY_SLOW_MESSAGE = "Very slow network. Check the connection for problems."

SUGGESTIONS: tuple[str, ...] = (
    "Use Cat5e or better network cables",
    "Check that the network switch supports Gigabit",
    "Make sure the network adapter negotiates 1000 Mbps full duplex",
    "Close unnecessary network applications and services",
    "Look for network bottlenecks or interference",
)


@dataclass(frozen=True, slots=True)
class Evaluation:
    """Rating of a measured rate against the Gigabit ceiling.

    Attributes:
        rate_mb_per_s: The evaluated rate in MB/s.
        percent: Rate as a percentage of ``THEORETICAL_MB_PER_S``.
        rating: The rating tier.
        message: One-line human explanation of the tier.
        suggestions: Improvement hints, empty at or above the practical threshold.
    """

    rate_mb_per_s: float
    percent: float
    rating: Rating
    message: str
    suggestions: tuple[str, ...]


def evaluate(rate_mb_per_s: float) -> Evaluation:
    """Evaluate a transfer rate.

    Args:
        rate_mb_per_s: Measured rate in MB/s.

    Returns:
        Evaluation: The rating, percentage and suggestions for this rate.

    Raises:
        ValueError: If the rate is negative or NaN.
    """
    if math.isnan(rate_mb_per_s) or rate_mb_per_s < 0:
        raise ValueError(f"rate must be a non-negative number, got {rate_mb_per_s!r}")

    percent = rate_mb_per_s / THEORETICAL_MB_PER_S * 100.0

    rating, message = Rating.VERY_SLOW, _VERY_SLOW_MESSAGE
    for lower_bound, band_rating, band_message in _BANDS:
        if rate_mb_per_s >= lower_bound:
            rating, message = band_rating, band_message
            break

    suggestions = SUGGESTIONS if rate_mb_per_s < PRACTICAL_THRESHOLD_MB_PER_S else ()

    return Evaluation(
        rate_mb_per_s=rate_mb_per_s,
        percent=percent,
        rating=rating,
        message=message,
        suggestions=suggestions,
    )


class SpeedUnit(str, Enum):
    """Display units for a rate measured in MB/s."""

    MBPS = "Mbps"
    GBPS = "Gbps"
    MB_PER_S = "MB/s"
    KBPS = "Kbps"

    def convert(self, rate_mb_per_s: float) -> float:
        """Convert a rate in MB/s into this unit."""
        if self is SpeedUnit.MBPS:
            return rate_mb_per_s * 8
        if self is SpeedUnit.GBPS:
            return rate_mb_per_s * 8 / 1024
        if self is SpeedUnit.KBPS:
            return rate_mb_per_s * 8 * 1024
        return rate_mb_per_s
