"""
Helper functions for database operations.

This module provides:
- Batch operation helpers
- Pagination helpers
- Low-level attribute serialization for transactional writes
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Dict, Any, Iterator, Optional, Union, Tuple, Callable, TypeVar, Sequence

from boto3.dynamodb.types import TypeSerializer

logger = logging.getLogger(__name__)

# Type variable for generic functions
T = TypeVar('T')

# DynamoDB limit on the number of actions in one TransactWriteItems call
MAX_TRANSACT_ITEMS = 100

_serializer = TypeSerializer()


def to_db_id(id_value: Union[str, uuid.UUID, None]) -> Optional[str]:
    """
    Convert UUID to string for DynamoDB operations.

    Example:
        key = {'merchantId': to_db_id(merchant_id)}
    """
    if id_value is None:
        return None
    return str(id_value)


def current_timestamp() -> int:
    """Current UTC timestamp in milliseconds (DynamoDB timestamp format)."""
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    for i in range(0, len(items), size):
        yield items[i:i + size]


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """
    Convert a resource-style item into the low-level attribute-value format
    required by the client API (e.g. transact_write_items).
    """
    return {key: _serializer.serialize(value) for key, value in item.items()}


def batch_write_items(
    table: Any,
    items: List[Dict[str, Any]],
    batch_size: int = 25
) -> int:
    """
    Write items in batches respecting DynamoDB limits.

    Returns:
        Number of items written

    Example:
        written_count = batch_write_items(
            table=tables.require('transactions'),
            items=[tx.to_dynamodb_item() for tx in transactions]
        )
    """
    if not items:
        logger.debug("No items to write")
        return 0

    count = 0

    for batch in chunked(items, batch_size):
        with table.batch_writer() as writer:
            for item in batch:
                writer.put_item(Item=item)
                count += 1

    logger.info(f"Batch wrote {count} items to {table.table_name}")
    return count


def paginated_query(
    table: Any,
    query_params: Dict[str, Any],
    max_items: Optional[int] = None,
    transform: Optional[Callable[[Dict], T]] = None
) -> Tuple[List[T], Optional[Dict[str, Any]]]:
    """
    Execute paginated DynamoDB query and return all items.

    Args:
        table: DynamoDB table resource
        query_params: Query parameters (KeyConditionExpression, etc.)
        max_items: Maximum items to return (None for all)
        transform: Optional function to transform each item

    Returns:
        Tuple of (items, last_evaluated_key)

    Example:
        from boto3.dynamodb.conditions import Key

        items, last_key = paginated_query(
            table=tables.require('transactions'),
            query_params={'KeyConditionExpression': Key('userId').eq(user_id)},
            transform=Transaction.from_dynamodb_item
        )
    """
    items: List[T] = []
    current_params = query_params.copy()
    last_evaluated_key = None

    while True:
        response = table.query(**current_params)
        batch = response.get('Items', [])

        if transform:
            batch = [transform(item) for item in batch]

        items.extend(batch)

        last_evaluated_key = response.get('LastEvaluatedKey')
        if max_items and len(items) >= max_items:
            items = items[:max_items]
            break

        if not last_evaluated_key:
            break

        current_params['ExclusiveStartKey'] = last_evaluated_key

    logger.debug(f"Paginated query returned {len(items)} items")
    return items, last_evaluated_key
