"""
Models package for the recurring charge drift detector.
"""

from .transaction import (
    RawTransaction,
    Transaction,
)

from .merchant import (
    Merchant,
    MerchantAlias,
)

from .recurring_charge import (
    RecurrenceFrequency,
    RecurringChargeCandidate,
    RecurringCharge,
    PriceChangeEvent,
    DriftMetrics,
    PriceDriftSummary,
    MerchantPriceHistory,
)

__all__ = [
    'RawTransaction',
    'Transaction',
    'Merchant',
    'MerchantAlias',
    'RecurrenceFrequency',
    'RecurringChargeCandidate',
    'RecurringCharge',
    'PriceChangeEvent',
    'DriftMetrics',
    'PriceDriftSummary',
    'MerchantPriceHistory',
]

__all__ = sorted(list(set(__all__)))
