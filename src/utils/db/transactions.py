"""
Transaction database operations.

Transactions are keyed on (userId, transactionId). Ingestion derives
deterministic transaction IDs, so saving the same batch twice upserts.
"""

import logging
import uuid
from typing import List, Optional

from boto3.dynamodb.conditions import Key, Attr

from models.transaction import Transaction
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
)
from .helpers import batch_write_items, paginated_query, to_db_id

logger = logging.getLogger(__name__)


@monitor_performance(operation_type="batch_write", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("save_transactions")
def save_transactions(transactions: List[Transaction]) -> int:
    """
    Upsert a batch of transactions.

    Returns:
        Number of items written
    """
    if not transactions:
        return 0
    table = tables.require('transactions')
    return batch_write_items(
        table=table,
        items=[tx.to_dynamodb_item() for tx in transactions]
    )


@monitor_performance(operation_type="query", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_user_transactions")
def list_user_transactions(
    user_id: str,
    merchant_id: Optional[uuid.UUID] = None,
    include_pending: bool = True
) -> List[Transaction]:
    """
    List a user's transactions in ascending date order.

    Args:
        user_id: Owner of the transactions
        merchant_id: Only return transactions bound to this merchant
        include_pending: Whether pending transactions are returned
    """
    table = tables.require('transactions')

    query_params = {'KeyConditionExpression': Key('userId').eq(user_id)}
    filters = []
    if merchant_id is not None:
        filters.append(Attr('merchantId').eq(to_db_id(merchant_id)))
    if not include_pending:
        filters.append(Attr('pending').ne(True))
    if filters:
        filter_expression = filters[0]
        for extra in filters[1:]:
            filter_expression = filter_expression & extra
        query_params['FilterExpression'] = filter_expression

    transactions, _ = paginated_query(
        table=table,
        query_params=query_params,
        transform=Transaction.from_dynamodb_item
    )
    transactions.sort(key=lambda tx: tx.date)
    logger.debug(f"DB: Found {len(transactions)} transactions for user {user_id}")
    return transactions
