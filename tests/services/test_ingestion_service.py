"""
Unit tests for TransactionIngestionService.

Merchant resolution runs against the in-memory repository; the transaction
store is patched.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from models.transaction import RawTransaction
from services.ingestion_service import (
    TransactionIngestionService,
    aggregator_transaction_id,
    csv_transaction_id,
)
from services.merchants import MerchantResolver
from utils.db.base import StorageError
from utils.transaction_parser import generate_sample_csv
from tests.fixtures.recurring_charge_fixtures import (
    TEST_USER,
    InMemoryMerchantRepository,
    failing_repository,
)


@pytest.fixture
def mock_save():
    with patch('services.ingestion_service.save_transactions') as mock:
        mock.side_effect = lambda transactions: len(transactions)
        yield mock


@pytest.fixture
def repository():
    return InMemoryMerchantRepository()


@pytest.fixture
def service(repository):
    return TransactionIngestionService(resolver=MerchantResolver(repository))


def saved_transactions(mock_save):
    return mock_save.call_args[0][0]


class TestIngestCsv:
    """Tests for ingest_csv."""

    def test_sample_file_resolves_three_merchants(self, service, repository, mock_save):
        result = service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv", account_id="checking")

        assert result.parsed == 12
        assert result.added == 12
        assert result.unresolved == 0
        assert result.errors == []

        stored = saved_transactions(mock_save)
        assert {tx.user_id for tx in stored} == {TEST_USER}
        assert {tx.account_id for tx in stored} == {"checking"}
        assert len({tx.merchant_id for tx in stored}) == 3
        assert sorted(name for _, name in repository.merchants) == ["Amazon", "Netflix", "Spotify"]

    def test_resolution_is_cached_per_run(self, service, repository, mock_save):
        service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")

        assert repository.calls.count('get_alias') == 3

    def test_reimport_produces_same_ids(self, service, mock_save):
        service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        first_ids = [tx.transaction_id for tx in saved_transactions(mock_save)]

        service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")
        second_ids = [tx.transaction_id for tx in saved_transactions(mock_save)]

        assert first_ids == second_ids
        assert len(set(first_ids)) == 12

    def test_import_name_is_part_of_id(self, service, mock_save):
        service.ingest_csv(TEST_USER, generate_sample_csv(), "january.csv")
        first_ids = {tx.transaction_id for tx in saved_transactions(mock_save)}

        service.ingest_csv(TEST_USER, generate_sample_csv(), "february.csv")
        second_ids = {tx.transaction_id for tx in saved_transactions(mock_save)}

        assert first_ids.isdisjoint(second_ids)

    def test_resolution_failure_keeps_transaction(self, mock_save):
        service = TransactionIngestionService(resolver=MerchantResolver(failing_repository()))

        result = service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")

        assert result.added == 12
        assert result.unresolved == 12
        assert all(tx.merchant_id is None for tx in saved_transactions(mock_save))

    def test_file_with_only_errors_writes_nothing(self, service, mock_save):
        content = "Date,Description,Amount\nbad,Netflix,15.99\n"

        result = service.ingest_csv(TEST_USER, content, "broken.csv")

        assert result.parsed == 0
        assert result.added == 0
        assert result.error_count == 1
        assert result.errors == ['Row 2: Invalid date "bad"']
        mock_save.assert_not_called()

    def test_partial_file_reports_errors_and_stores_rest(self, service, mock_save):
        content = "Date,Description,Amount\nbad,Netflix,15.99\n01/15/2024,Netflix,15.99\n"

        result = service.ingest_csv(TEST_USER, content, "partial.csv")

        assert result.added == 1
        assert result.skipped == 1
        assert result.error_count == 1

    def test_store_failure_propagates(self, service, mock_save):
        mock_save.side_effect = StorageError("write failed")

        with pytest.raises(StorageError):
            service.ingest_csv(TEST_USER, generate_sample_csv(), "sample.csv")


class TestIngestRawTransactions:
    """Tests for ingest_raw_transactions."""

    def test_only_positive_amounts_kept(self, service, mock_save):
        raws = [
            RawTransaction(date=date(2024, 1, 15), raw_description="NETFLIX.COM", amount=Decimal("15.99")),
            RawTransaction(date=date(2024, 1, 16), raw_description="PAYROLL", amount=Decimal("-2500.00")),
            RawTransaction(date=date(2024, 1, 17), raw_description="ZERO", amount=Decimal("0")),
        ]

        result = service.ingest_raw_transactions(TEST_USER, raws, account_id="acct-1")

        assert result.parsed == 1
        assert result.added == 1
        assert result.skipped == 2
        stored = saved_transactions(mock_save)
        assert [tx.description for tx in stored] == ["NETFLIX.COM"]
        assert stored[0].merchant_id is not None

    def test_blank_description_skipped_without_aborting_batch(self, service, mock_save):
        raws = [
            RawTransaction(date=date(2024, 1, 15), raw_description="NETFLIX.COM", amount=Decimal("15.99")),
            RawTransaction(date=date(2024, 1, 16), raw_description="   ", amount=Decimal("4.00")),
            RawTransaction(date=date(2024, 1, 17), raw_description="", amount=Decimal("2.00")),
        ]

        result = service.ingest_raw_transactions(TEST_USER, raws)

        assert result.added == 1
        assert result.skipped == 2
        assert result.unresolved == 0
        assert [tx.description for tx in saved_transactions(mock_save)] == ["NETFLIX.COM"]

    def test_pending_flag_carried_over(self, service, mock_save):
        raws = [RawTransaction(date=date(2024, 1, 15), raw_description="NETFLIX.COM", amount="15.99", pending=True)]

        service.ingest_raw_transactions(TEST_USER, raws)

        assert saved_transactions(mock_save)[0].pending is True

    def test_nothing_to_store(self, service, mock_save):
        result = service.ingest_raw_transactions(TEST_USER, [])

        assert result.added == 0
        mock_save.assert_not_called()


class TestTransactionIds:
    def test_csv_id_is_deterministic(self):
        raw = RawTransaction(date=date(2024, 1, 15), raw_description="Netflix", amount=Decimal("15.99"))

        assert csv_transaction_id(raw, "a.csv", 0) == csv_transaction_id(raw, "a.csv", 0)
        assert csv_transaction_id(raw, "a.csv", 0) != csv_transaction_id(raw, "a.csv", 1)
        assert isinstance(csv_transaction_id(raw, "a.csv", 0), uuid.UUID)

    def test_aggregator_id_depends_on_account(self):
        raw = RawTransaction(date=date(2024, 1, 15), raw_description="Netflix", amount=Decimal("15.99"))

        assert aggregator_transaction_id(raw, "a", 0) != aggregator_transaction_id(raw, "b", 0)
