"""
Pattern analyzers for recurring charge detection.

This package provides specialized analyzers that score different aspects
of a merchant's transaction group.
"""

from services.recurring_charges.analyzers.frequency import FrequencyAnalyzer, FrequencyMatch
from services.recurring_charges.analyzers.amount import AmountConsistencyAnalyzer

__all__ = [
    'FrequencyAnalyzer',
    'FrequencyMatch',
    'AmountConsistencyAnalyzer',
]
