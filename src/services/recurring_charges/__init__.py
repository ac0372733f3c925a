"""
Recurring Charge Detection and Price Drift Services.

Public API:
    - RecurringChargeDetectionService: Groups transactions by merchant and detects recurring charges
    - PriceDriftService: Detects price change events for a recurring charge
    - calculate_drift_metrics: Percent and annualized drift between two amounts
    - DetectionConfig / DriftConfig: Policy configuration
    - DEFAULT_CONFIG / DEFAULT_DRIFT_CONFIG: Default configuration instances
"""

from services.recurring_charges.detection_service import RecurringChargeDetectionService
from services.recurring_charges.drift_service import (
    PriceDriftService,
    calculate_drift_metrics,
    months_between,
)
from services.recurring_charges.config import (
    DetectionConfig,
    DriftConfig,
    FrequencyBucket,
    FREQUENCY_BUCKETS,
    DEFAULT_CONFIG,
    DEFAULT_DRIFT_CONFIG,
)
from services.recurring_charges.analyzers import (
    FrequencyAnalyzer,
    FrequencyMatch,
    AmountConsistencyAnalyzer,
)

__all__ = [
    'RecurringChargeDetectionService',
    'PriceDriftService',
    'calculate_drift_metrics',
    'months_between',
    'DetectionConfig',
    'DriftConfig',
    'FrequencyBucket',
    'FREQUENCY_BUCKETS',
    'DEFAULT_CONFIG',
    'DEFAULT_DRIFT_CONFIG',
    'FrequencyAnalyzer',
    'FrequencyMatch',
    'AmountConsistencyAnalyzer',
]
