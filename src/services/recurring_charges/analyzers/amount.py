"""
Amount consistency analyzer for recurring charge detection.
"""

import logging
from decimal import Decimal
from typing import Sequence

import numpy as np

logger = logging.getLogger(__name__)


class AmountConsistencyAnalyzer:
    """
    Measures how tightly a group's amounts cluster around their mean.

    An amount is consistent when it is within ``tolerance`` (relative) of the
    group mean. Groups with a non-positive mean are never consistent.
    """

    def __init__(self, tolerance: float = 0.15):
        self.tolerance = tolerance

    def consistency_ratio(self, amounts: Sequence[Decimal]) -> float:
        """
        Share of amounts within tolerance of the mean.

        Returns:
            Ratio in [0, 1]; 0.0 for an empty group or a mean <= 0
        """
        if not amounts:
            return 0.0

        values = np.array([float(a) for a in amounts])
        mean_amount = float(np.mean(values))
        if mean_amount <= 0:
            return 0.0

        deviations = np.abs(values - mean_amount) / mean_amount
        consistent = int(np.sum(deviations <= self.tolerance))
        return consistent / len(values)
