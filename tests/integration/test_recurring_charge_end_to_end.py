"""
Integration tests for the drift detection flow end to end.

CSV upload -> merchant resolution -> recurrence detection -> price change
detection -> drift report, with the DynamoDB layer replaced by an in-memory
store that honours the same keys.
"""

import uuid
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from unittest.mock import patch

import pytest

from models.merchant import Merchant
from models.recurring_charge import PriceChangeEvent, RecurrenceFrequency, RecurringCharge
from models.transaction import Transaction
from services.drift_pipeline_service import DriftPipelineService
from services.ingestion_service import TransactionIngestionService
from services.merchants import MerchantResolver
from utils.transaction_parser import generate_sample_csv
from tests.fixtures.recurring_charge_fixtures import TEST_USER, InMemoryMerchantRepository

PIPELINE_FUNCTIONS = (
    'list_user_transactions',
    'list_user_merchants',
    'get_merchant_by_id',
    'set_merchant_excluded_in_db',
    'upsert_recurring_charge',
    'list_recurring_charges',
    'commit_price_changes',
    'deactivate_merchant_charges',
    'get_recurring_charge_for_merchant',
    'list_price_changes',
)


class InMemoryStore:
    """Transactions, charges and price changes keyed like their tables."""

    def __init__(self, merchants: InMemoryMerchantRepository):
        self.merchants = merchants
        self.transactions: Dict[uuid.UUID, Transaction] = {}
        self.charges: Dict[Tuple[str, str], RecurringCharge] = {}
        self.price_changes: Dict[Tuple[uuid.UUID, date], PriceChangeEvent] = {}

    def save_transactions(self, transactions: List[Transaction]) -> int:
        for tx in transactions:
            self.transactions[tx.transaction_id] = tx
        return len(transactions)

    def list_user_transactions(
        self, user_id: str, merchant_id: Optional[uuid.UUID] = None, include_pending: bool = True
    ) -> List[Transaction]:
        result = [
            tx for tx in self.transactions.values()
            if tx.user_id == user_id
            and (merchant_id is None or tx.merchant_id == merchant_id)
            and (include_pending or not tx.pending)
        ]
        return sorted(result, key=lambda tx: tx.date)

    def list_user_merchants(self, user_id: str) -> List[Merchant]:
        return self.merchants.list_merchants(user_id)

    def get_merchant_by_id(self, merchant_id: uuid.UUID) -> Optional[Merchant]:
        return next((m for m in self.merchants.merchants.values() if m.merchant_id == merchant_id), None)

    def set_merchant_excluded_in_db(self, merchant: Merchant, excluded: bool) -> Merchant:
        merchant.excluded = excluded
        return merchant

    def upsert_recurring_charge(self, charge: RecurringCharge) -> RecurringCharge:
        key = (charge.user_id, charge.charge_key)
        existing = self.charges.get(key)
        stored = charge.model_copy()
        if existing is not None:
            stored.recurring_charge_id = existing.recurring_charge_id
            stored.created_at = existing.created_at
        stored.is_active = True
        self.charges[key] = stored
        return stored.model_copy()

    def list_recurring_charges(self, user_id: str, active_only: bool = False) -> List[RecurringCharge]:
        return [
            c.model_copy() for (uid, _), c in self.charges.items()
            if uid == user_id and (c.is_active or not active_only)
        ]

    def commit_price_changes(self, charge: RecurringCharge, events: List[PriceChangeEvent]) -> int:
        inserted = 0
        for event in events:
            key = (event.recurring_charge_id, event.detected_at)
            if key in self.price_changes:
                continue
            self.price_changes[key] = event
            inserted += 1
        stored = self.charges[(charge.user_id, charge.charge_key)]
        stored.advance_to(charge.current_amount, charge.last_seen_at)
        return inserted

    def deactivate_merchant_charges(self, user_id: str, merchant_id: uuid.UUID) -> int:
        count = 0
        for (uid, _), charge in self.charges.items():
            if uid == user_id and charge.merchant_id == merchant_id and charge.is_active:
                charge.is_active = False
                count += 1
        return count

    def get_recurring_charge_for_merchant(self, user_id: str, merchant_id: uuid.UUID) -> Optional[RecurringCharge]:
        charges = [c for c in self.list_recurring_charges(user_id) if c.merchant_id == merchant_id]
        return max(charges, key=lambda c: (c.is_active, c.confidence)) if charges else None

    def list_price_changes(self, recurring_charge_id: uuid.UUID) -> List[PriceChangeEvent]:
        events = [e for (cid, _), e in self.price_changes.items() if cid == recurring_charge_id]
        return sorted(events, key=lambda e: e.detected_at)


@pytest.fixture
def store():
    return InMemoryStore(InMemoryMerchantRepository())


@pytest.fixture
def wired(store):
    """Ingestion and pipeline services backed by the in-memory store."""
    patches = {name: getattr(store, name) for name in PIPELINE_FUNCTIONS}
    with patch.multiple('services.drift_pipeline_service', **patches), \
            patch('services.ingestion_service.save_transactions', store.save_transactions):
        ingestion = TransactionIngestionService(resolver=MerchantResolver(store.merchants))
        yield ingestion, DriftPipelineService()


def merchant_named(store: InMemoryStore, name: str) -> Merchant:
    return store.merchants.merchants[(TEST_USER, name)]


@pytest.mark.integration
class TestDriftDetectionEndToEnd:
    def test_sample_upload_produces_drift_report(self, store, wired):
        ingestion, pipeline = wired

        ingest_result = ingestion.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        run = pipeline.run_detection(TEST_USER)
        summaries = pipeline.get_price_drift_summary(TEST_USER)

        assert ingest_result.added == 12
        assert run.recurring_detected == 3
        assert run.recurring_saved == 3
        assert run.price_changes_detected == 3
        assert run.price_changes_saved == 3
        assert {c.frequency for c in store.charges.values()} == {RecurrenceFrequency.MONTHLY}

        assert [s.merchant_name for s in summaries] == ["Amazon", "Netflix", "Spotify"]
        amazon, netflix, spotify = summaries
        assert amazon.metrics.percent_change == Decimal("13.3422")
        assert netflix.metrics.percent_change == Decimal("12.5078")
        assert spotify.metrics.percent_change == Decimal("10.0100")
        assert netflix.first_amount == Decimal("15.99")
        assert netflix.current_amount == Decimal("17.99")
        assert netflix.metrics.months_tracked == 3
        assert float(netflix.metrics.annualized_increase) == pytest.approx(60.23, abs=0.01)

    def test_rerun_is_idempotent(self, store, wired):
        ingestion, pipeline = wired
        ingestion.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        pipeline.run_detection(TEST_USER)
        charge_ids = {c.recurring_charge_id for c in store.charges.values()}

        ingestion.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        second = pipeline.run_detection(TEST_USER)

        assert len(store.transactions) == 12
        assert second.price_changes_detected == 3
        assert second.price_changes_saved == 0
        assert len(store.price_changes) == 3
        assert {c.recurring_charge_id for c in store.charges.values()} == charge_ids

    def test_new_month_extends_existing_charge(self, store, wired):
        ingestion, pipeline = wired
        ingestion.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        pipeline.run_detection(TEST_USER)

        ingestion.ingest_csv(TEST_USER, "Date,Description,Amount\n05/15/2024,NETFLIX.COM,19.99\n", "may.csv")
        run = pipeline.run_detection(TEST_USER)

        netflix = merchant_named(store, "Netflix")
        history = pipeline.get_merchant_price_history(TEST_USER, netflix.merchant_id)
        assert run.price_changes_saved == 1
        assert history.recurring_charge.current_amount == Decimal("19.99")
        assert history.recurring_charge.last_seen_at == date(2024, 5, 15)
        assert [e.new_amount for e in history.price_changes] == [Decimal("17.99"), Decimal("19.99")]
        assert len(history.transactions) == 5

    def test_excluded_merchant_leaves_report(self, store, wired):
        ingestion, pipeline = wired
        ingestion.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        pipeline.run_detection(TEST_USER)

        pipeline.set_merchant_excluded(TEST_USER, merchant_named(store, "Amazon").merchant_id, True)
        rerun = pipeline.run_detection(TEST_USER)

        assert [s.merchant_name for s in pipeline.get_price_drift_summary(TEST_USER)] == ["Netflix", "Spotify"]
        assert rerun.recurring_detected == 2
