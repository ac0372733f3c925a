"""
Frequency analyzer for recurring charge detection.

Analyzes transaction intervals to detect recurrence frequency.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np

from models.recurring_charge import RecurrenceFrequency
from services.recurring_charges.config import FREQUENCY_BUCKETS, FrequencyBucket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrequencyMatch:
    """Best-scoring frequency bucket for a group of dates."""
    frequency: RecurrenceFrequency
    score: float
    mean_interval: float


class FrequencyAnalyzer:
    """
    Analyzes transaction intervals to detect recurrence frequency.

    Calculates the mean interval between consecutive dates and scores every
    bucket whose day range contains it. A bucket's score is the share of
    individual intervals inside its range, times the bucket weight.
    """

    def __init__(self, buckets: Tuple[FrequencyBucket, ...] = FREQUENCY_BUCKETS):
        """
        Initialize the frequency analyzer.

        Args:
            buckets: Frequency buckets, scanned in order
        """
        self.buckets = buckets

    def detect_frequency(self, dates: Sequence[date]) -> Optional[FrequencyMatch]:
        """
        Detect recurrence frequency for a group of transaction dates.

        Args:
            dates: Transaction dates in ascending order

        Returns:
            The best FrequencyMatch, or None if no bucket contains the mean
            interval or there are fewer than two dates
        """
        intervals = self.calculate_intervals(dates)
        if not intervals:
            return None

        mean_interval = float(np.mean(intervals))

        best: Optional[FrequencyMatch] = None
        for bucket in self.buckets:
            if not bucket.contains(mean_interval):
                continue
            in_range = sum(1 for days in intervals if bucket.contains(days))
            score = (in_range / len(intervals)) * bucket.weight
            # Strictly greater: on a tie the earlier bucket wins
            if best is None or score > best.score:
                best = FrequencyMatch(bucket.frequency, score, mean_interval)

        if best is None:
            logger.debug(f"No frequency bucket contains mean interval {mean_interval:.1f} days")
        return best

    @staticmethod
    def calculate_intervals(dates: Sequence[date]) -> List[int]:
        """Whole-day intervals between consecutive dates."""
        return [(dates[i + 1] - dates[i]).days for i in range(len(dates) - 1)]
