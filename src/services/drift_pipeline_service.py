"""
Drift Pipeline Service.

Runs recurrence and price change detection over a user's stored
transactions and serves the drift reports built from their results.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional, Tuple

from models.merchant import Merchant
from models.recurring_charge import (
    MerchantPriceHistory,
    PriceDriftSummary,
    RecurringCharge,
)
from services.recurring_charges import (
    PriceDriftService,
    RecurringChargeDetectionService,
    calculate_drift_metrics,
)
from utils.db.base import ConflictError, StorageError, checked_mandatory_resource
from utils.db.merchants import (
    get_merchant_by_id,
    list_user_merchants,
    set_merchant_excluded_in_db,
)
from utils.db.recurring_charges import (
    commit_price_changes,
    deactivate_merchant_charges,
    get_recurring_charge_for_merchant,
    list_price_changes,
    list_recurring_charges,
    upsert_recurring_charge,
)
from utils.db.transactions import list_user_transactions
from utils.logging_config import configure_logging
from utils.performance import PipelinePerformanceTracker

configure_logging()
logger = logging.getLogger(__name__)


@dataclass
class DetectionRunResult:
    recurring_detected: int = 0
    recurring_saved: int = 0
    price_changes_detected: int = 0
    price_changes_saved: int = 0


class DriftPipelineService:
    """Orchestrates detection runs and drift reporting for one user at a time."""

    def __init__(
        self,
        detection_service: Optional[RecurringChargeDetectionService] = None,
        drift_service: Optional[PriceDriftService] = None
    ):
        self.detection_service = detection_service or RecurringChargeDetectionService()
        self.drift_service = drift_service or PriceDriftService()

    def run_recurring_detection(self, user_id: str) -> Tuple[int, int]:
        """
        Detect recurring charges and upsert them. Excluded merchants are
        ignored.

        Returns:
            (detected, saved); a failed upsert is logged and not counted
        """
        transactions = list_user_transactions(user_id, include_pending=False)
        excluded = {m.merchant_id for m in list_user_merchants(user_id) if m.excluded}
        eligible = [tx for tx in transactions if tx.merchant_id not in excluded]

        candidates = self.detection_service.detect_recurring_charges(eligible)

        saved = 0
        for candidate in candidates:
            try:
                upsert_recurring_charge(RecurringCharge.from_candidate(user_id, candidate))
                saved += 1
            except StorageError as e:
                logger.error(
                    f"Failed to save recurring charge for merchant {candidate.merchant_id}: {str(e)}",
                    extra={'user_id': user_id}
                )

        logger.info(f"Recurring detection for user {user_id}: detected={len(candidates)}, saved={saved}")
        return len(candidates), saved

    def run_price_change_detection(self, user_id: str) -> Tuple[int, int]:
        """
        Detect price changes for every active charge and commit each charge's
        events together with its advanced current amount.

        Returns:
            (detected, saved)
        """
        charges = list_recurring_charges(user_id, active_only=True)
        transactions = list_user_transactions(user_id, include_pending=False)

        detected = 0
        saved = 0
        for charge in charges:
            events = self.drift_service.detect_price_changes(transactions, charge)
            detected += len(events)
            advanced = self.drift_service.advance_charge(transactions, charge)
            if not events and not advanced:
                continue
            try:
                saved += commit_price_changes(charge, events)
            except (ConflictError, StorageError) as e:
                logger.error(
                    f"Failed to commit price changes for charge {charge.recurring_charge_id}: {str(e)}",
                    extra={'user_id': user_id}
                )

        logger.info(f"Price change detection for user {user_id}: detected={detected}, saved={saved}")
        return detected, saved

    def run_detection(self, user_id: str) -> DetectionRunResult:
        """Run recurring charge detection, then price change detection."""
        result = DetectionRunResult()
        with PipelinePerformanceTracker("run_detection") as tracker:
            with tracker.stage('recurrence_detection'):
                result.recurring_detected, result.recurring_saved = self.run_recurring_detection(user_id)
            with tracker.stage('price_change_detection'):
                result.price_changes_detected, result.price_changes_saved = (
                    self.run_price_change_detection(user_id)
                )
            tracker.set_count('recurring_charges', result.recurring_saved)
            tracker.set_count('price_changes', result.price_changes_saved)
        return result

    def get_price_drift_summary(self, user_id: str) -> List[PriceDriftSummary]:
        """
        Drift report for active charges whose price moved, excluding excluded
        merchants, largest percent change first.
        """
        merchants = {m.merchant_id: m for m in list_user_merchants(user_id)}
        summaries = []
        for charge in list_recurring_charges(user_id, active_only=True):
            if charge.current_amount == charge.first_amount:
                continue
            merchant = merchants.get(charge.merchant_id)
            if merchant is None or merchant.excluded:
                continue
            summaries.append(PriceDriftSummary(
                recurring_charge_id=charge.recurring_charge_id,
                merchant_id=charge.merchant_id,
                merchant_name=merchant.canonical_name,
                frequency=charge.frequency,
                first_amount=charge.first_amount,
                current_amount=charge.current_amount,
                first_seen_at=charge.first_seen_at,
                last_seen_at=charge.last_seen_at,
                metrics=calculate_drift_metrics(
                    charge.first_amount,
                    charge.current_amount,
                    charge.first_seen_at,
                    charge.last_seen_at,
                ),
            ))

        summaries.sort(key=lambda s: s.metrics.percent_change, reverse=True)
        return summaries

    def get_merchant_price_history(self, user_id: str, merchant_id: uuid.UUID) -> MerchantPriceHistory:
        """
        Raises:
            NotFound: If the merchant does not exist
            NotAuthorized: If it belongs to another user
        """
        merchant = checked_mandatory_resource(merchant_id, user_id, get_merchant_by_id, "Merchant")
        charge = get_recurring_charge_for_merchant(user_id, merchant_id)

        price_changes = list_price_changes(charge.recurring_charge_id) if charge else []
        transactions = list_user_transactions(user_id, merchant_id=merchant_id, include_pending=False)

        drift = None
        if charge is not None:
            drift = calculate_drift_metrics(
                charge.first_amount,
                charge.current_amount,
                charge.first_seen_at,
                charge.last_seen_at,
            )

        return MerchantPriceHistory(
            merchant=merchant,
            recurring_charge=charge,
            price_changes=price_changes,
            transactions=transactions,
            drift=drift,
        )

    def set_merchant_excluded(self, user_id: str, merchant_id: uuid.UUID, excluded: bool) -> Merchant:
        """Set the exclusion flag; excluding also deactivates the merchant's charges."""
        merchant = checked_mandatory_resource(merchant_id, user_id, get_merchant_by_id, "Merchant")
        merchant = set_merchant_excluded_in_db(merchant, excluded)
        if excluded:
            deactivated = deactivate_merchant_charges(user_id, merchant_id)
            logger.info(f"Excluded merchant {merchant_id}, deactivated {deactivated} charges")
        return merchant
