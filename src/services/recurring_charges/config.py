"""
Configuration classes for recurring charge detection and price drift.

Centralizes all configuration parameters, thresholds, and weights used
in the detection pipeline. All configuration objects are frozen so they
can be shared freely between services.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Tuple

from models.recurring_charge import RecurrenceFrequency


@dataclass(frozen=True)
class FrequencyBucket:
    """
    Day range and score weight for one recurrence frequency.

    A group of transactions falls into the bucket when its mean interval,
    in days, is within [min_days, max_days] inclusive.
    """

    frequency: RecurrenceFrequency
    min_days: int
    max_days: int
    weight: float

    def contains(self, days: float) -> bool:
        return self.min_days <= days <= self.max_days


FREQUENCY_BUCKETS: Tuple[FrequencyBucket, ...] = (
    FrequencyBucket(RecurrenceFrequency.WEEKLY, 5, 9, 1.0),
    FrequencyBucket(RecurrenceFrequency.BIWEEKLY, 12, 16, 1.0),
    FrequencyBucket(RecurrenceFrequency.MONTHLY, 27, 35, 1.2),
    FrequencyBucket(RecurrenceFrequency.QUARTERLY, 85, 100, 0.8),
    FrequencyBucket(RecurrenceFrequency.YEARLY, 355, 375, 0.6),
)


@dataclass(frozen=True)
class DetectionConfig:
    """Master configuration for recurring charge detection."""

    min_transactions: int = 2
    """Minimum number of transactions for a merchant group to be considered."""

    min_confidence: float = 0.5
    """Minimum frequency score for a group to be considered recurring."""

    amount_tolerance: float = 0.15
    """Maximum relative distance from the mean for an amount to be consistent."""

    min_consistency_ratio: float = 0.7
    """
    Minimum share of consistent amounts.

    For example, 0.70 means at least 70% of a group's amounts must be within
    amount_tolerance of the group mean.
    """

    consistency_boost: float = 0.2
    """Weight of the amount consistency ratio added to the frequency score."""

    buckets: Tuple[FrequencyBucket, ...] = field(default=FREQUENCY_BUCKETS)
    """Frequency buckets, scanned in order."""


@dataclass(frozen=True)
class DriftConfig:
    """Configuration for price change detection."""

    price_change_threshold_pct: Decimal = Decimal("1")
    """Absolute percent change an adjacent pair must exceed to emit an event."""


# Default configuration instances
DEFAULT_CONFIG = DetectionConfig()
DEFAULT_DRIFT_CONFIG = DriftConfig()

