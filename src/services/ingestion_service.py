"""
Transaction Ingestion Service.

Turns CSV uploads and aggregator records into stored transactions bound to
resolved merchants. Merchant resolution failures never drop a transaction;
it is stored without a merchant instead.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from models.transaction import RawTransaction, Transaction
from services.merchants import MerchantResolver, ResolutionError
from utils.db.merchants import DynamoDBMerchantRepository
from utils.db.transactions import save_transactions
from utils.logging_config import configure_logging
from utils.performance import PipelinePerformanceTracker
from utils.transaction_parser import parse_csv

configure_logging()
logger = logging.getLogger(__name__)

TRANSACTION_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, 'transactions.pricedrift')
DESCRIPTION_KEY_LENGTH = 20


@dataclass
class IngestionResult:
    parsed: int = 0
    added: int = 0
    skipped: int = 0
    unresolved: int = 0
    errors: List[str] = field(default_factory=list)
    error_count: int = 0


def csv_transaction_id(raw: RawTransaction, import_name: str, index: int) -> uuid.UUID:
    """Deterministic ID so that re-importing the same file upserts rather than duplicates."""
    key = '|'.join([
        raw.date.isoformat(),
        str(raw.amount),
        raw.raw_description[:DESCRIPTION_KEY_LENGTH],
        import_name,
        str(index),
    ])
    return uuid.uuid5(TRANSACTION_ID_NAMESPACE, key)


def aggregator_transaction_id(raw: RawTransaction, account_id: Optional[str], index: int) -> uuid.UUID:
    key = '|'.join([
        account_id or '',
        raw.date.isoformat(),
        str(raw.amount),
        raw.raw_description,
        str(index),
    ])
    return uuid.uuid5(TRANSACTION_ID_NAMESPACE, key)


class TransactionIngestionService:
    """Resolves merchants for incoming records and stores them."""

    def __init__(self, resolver: Optional[MerchantResolver] = None):
        self.resolver = resolver or MerchantResolver(DynamoDBMerchantRepository())

    def ingest_csv(
        self,
        user_id: str,
        content: str,
        import_name: str,
        account_id: Optional[str] = None
    ) -> IngestionResult:
        """
        Parse a CSV upload and store its transactions.

        If nothing parses and the file produced errors, nothing is written.
        """
        parsed = parse_csv(content)
        result = IngestionResult(
            parsed=len(parsed.transactions),
            skipped=parsed.skipped_count,
            errors=list(parsed.errors),
            error_count=parsed.error_count,
        )

        if not parsed.transactions:
            if parsed.errors:
                logger.warning(f"CSV import '{import_name}' for user {user_id} produced no transactions")
            return result

        ids = [
            csv_transaction_id(raw, import_name, index)
            for index, raw in enumerate(parsed.transactions)
        ]
        self._store(user_id, parsed.transactions, ids, account_id, result, operation='ingest_csv')
        return result

    def ingest_raw_transactions(
        self,
        user_id: str,
        raw_transactions: List[RawTransaction],
        account_id: Optional[str] = None
    ) -> IngestionResult:
        """
        Store aggregator records. Only positive amounts (charges) with a
        non-blank description are kept; the rest are counted as skipped.
        """
        charges = [
            raw for raw in raw_transactions
            if raw.amount > 0 and raw.raw_description.strip()
        ]
        result = IngestionResult(
            parsed=len(charges),
            skipped=len(raw_transactions) - len(charges),
        )
        if not charges:
            return result

        ids = [
            aggregator_transaction_id(raw, account_id, index)
            for index, raw in enumerate(charges)
        ]
        self._store(user_id, charges, ids, account_id, result, operation='ingest_raw_transactions')
        return result

    def _store(
        self,
        user_id: str,
        raws: List[RawTransaction],
        ids: List[uuid.UUID],
        account_id: Optional[str],
        result: IngestionResult,
        operation: str
    ) -> None:
        with PipelinePerformanceTracker(operation) as tracker:
            with tracker.stage('merchant_resolution'):
                resolved: Dict[str, uuid.UUID] = {}
                transactions = []
                for raw, transaction_id in zip(raws, ids):
                    merchant_id = self._resolve(user_id, raw.raw_description, resolved)
                    if merchant_id is None:
                        result.unresolved += 1
                    transactions.append(Transaction.from_raw(
                        raw,
                        user_id=user_id,
                        transaction_id=transaction_id,
                        account_id=account_id,
                        merchant_id=merchant_id,
                    ))

            with tracker.stage('save_transactions'):
                result.added = save_transactions(transactions)

            tracker.set_count('transactions', len(transactions))
            tracker.set_count('unresolved', result.unresolved)

    def _resolve(self, user_id: str, raw_name: str, resolved: Dict[str, uuid.UUID]) -> Optional[uuid.UUID]:
        if raw_name in resolved:
            return resolved[raw_name]
        try:
            merchant_id = self.resolver.resolve(user_id, raw_name)
        except ResolutionError as e:
            logger.error(
                f"Keeping transaction without merchant: {str(e)}",
                extra={'user_id': user_id, 'raw_name': raw_name}
            )
            return None
        resolved[raw_name] = merchant_id
        return merchant_id
