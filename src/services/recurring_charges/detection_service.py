"""
Recurring Charge Detection Service.

Groups a user's transactions by resolved merchant and decides which groups
behave like subscriptions.

## Detection Pipeline

```mermaid
graph TD
    A[Transactions] --> B[Drop pending / unresolved]
    B --> C[Group by merchant]
    C --> D{>= min_transactions?}
    D -->|No| X[Not recurring]
    D -->|Yes| E[FrequencyAnalyzer]
    E --> F{Bucket found and score >= min_confidence?}
    F -->|No| X
    F -->|Yes| G[AmountConsistencyAnalyzer]
    G --> H{ratio >= min_consistency_ratio?}
    H -->|No| X
    H -->|Yes| I[RecurringChargeCandidate]
```

Confidence is ``min(1, frequency_score + consistency_boost * consistency_ratio)``.
"""

import logging
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

from models.transaction import Transaction
from models.recurring_charge import RecurringChargeCandidate
from services.recurring_charges.analyzers import (
    AmountConsistencyAnalyzer,
    FrequencyAnalyzer,
)
from services.recurring_charges.config import DetectionConfig, DEFAULT_CONFIG

logger = logging.getLogger(__name__)


class RecurringChargeDetectionService:
    """
    Orchestrates recurring charge detection using specialized analyzers.

    Stateless apart from its configuration; one instance can serve any
    number of users.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        """
        Initialize the detection service.

        Args:
            config: Optional detection configuration. If None, uses DEFAULT_CONFIG.
        """
        self.config = config or DEFAULT_CONFIG
        self.frequency_analyzer = FrequencyAnalyzer(buckets=self.config.buckets)
        self.amount_analyzer = AmountConsistencyAnalyzer(tolerance=self.config.amount_tolerance)

    def detect_recurring_charges(self, transactions: List[Transaction]) -> List[RecurringChargeCandidate]:
        """
        Detect recurring charges in a user's transaction history.

        Args:
            transactions: Transactions in any order; pending and unresolved
                ones are ignored

        Returns:
            One candidate per recurring merchant group, in order of each
            merchant's first transaction
        """
        groups = self._group_by_merchant(transactions)
        logger.info(f"Analyzing {len(groups)} merchant groups from {len(transactions)} transactions")

        candidates = []
        for merchant_id, group in groups.items():
            candidate = self._analyze_group(merchant_id, group)
            if candidate is not None:
                candidates.append(candidate)

        logger.info(f"Detection complete: found {len(candidates)} recurring charges")
        return candidates

    def _group_by_merchant(self, transactions: List[Transaction]) -> Dict[uuid.UUID, List[Transaction]]:
        eligible = [tx for tx in transactions if not tx.pending and tx.merchant_id is not None]
        eligible.sort(key=lambda tx: tx.date)

        groups: Dict[uuid.UUID, List[Transaction]] = {}
        for tx in eligible:
            groups.setdefault(tx.merchant_id, []).append(tx)
        return groups

    def _analyze_group(
        self,
        merchant_id: uuid.UUID,
        group: List[Transaction]
    ) -> Optional[RecurringChargeCandidate]:
        """
        Score one merchant group (sorted by date).

        Returns:
            RecurringChargeCandidate or None if the group is not recurring
        """
        if len(group) < self.config.min_transactions:
            return None

        match = self.frequency_analyzer.detect_frequency([tx.date for tx in group])
        if match is None or match.score < self.config.min_confidence:
            logger.debug(f"Merchant {merchant_id}: no regular frequency")
            return None

        consistency = self.amount_analyzer.consistency_ratio([tx.amount for tx in group])
        if consistency < self.config.min_consistency_ratio:
            logger.debug(f"Merchant {merchant_id}: amounts too inconsistent ({consistency:.2f})")
            return None

        confidence = min(1.0, match.score + self.config.consistency_boost * consistency)

        return RecurringChargeCandidate(
            merchant_id=merchant_id,
            frequency=match.frequency,
            confidence=Decimal(str(round(confidence, 4))),
            first_amount=group[0].amount,
            current_amount=group[-1].amount,
            first_seen_at=group[0].date,
            last_seen_at=group[-1].date,
            transaction_count=len(group),
        )
