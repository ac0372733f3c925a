"""
Recurring charge and price change database operations.

Recurring charges are keyed on (userId, chargeKey) where chargeKey is
``merchantId#frequency``, which gives exactly one charge per (user, merchant,
frequency). Price changes are keyed on (recurringChargeId, detectedAt), their
idempotency key, and are written in the same transaction as the charge
update that produced them.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Sequence

from boto3.dynamodb.conditions import Key, Attr

from models.recurring_charge import PriceChangeEvent, RecurringCharge
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
)
from .helpers import (
    MAX_TRANSACT_ITEMS,
    chunked,
    current_timestamp,
    paginated_query,
    serialize_item,
    to_db_id,
)

logger = logging.getLogger(__name__)


def _merchant_prefix(merchant_id: uuid.UUID) -> str:
    return f"{to_db_id(merchant_id)}#"


# ============================================================================
# Recurring Charge Operations
# ============================================================================

@monitor_performance(warn_threshold_ms=300)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("upsert_recurring_charge")
def upsert_recurring_charge(charge: RecurringCharge) -> RecurringCharge:
    """
    Insert or update the charge for (user, merchant, frequency).

    The stored charge keeps its original ID and creation time; every other
    detector field is overwritten and the charge is reactivated.

    Returns:
        The charge as stored after the update
    """
    table = tables.require('recurring_charges')
    item = charge.to_dynamodb_item()
    now = current_timestamp()

    response = table.update_item(
        Key={'userId': charge.user_id, 'chargeKey': charge.charge_key},
        UpdateExpression=(
            'SET recurringChargeId = if_not_exists(recurringChargeId, :id), '
            'createdAt = if_not_exists(createdAt, :now), '
            'merchantId = :merchantId, frequency = :frequency, confidence = :confidence, '
            'firstAmount = :firstAmount, currentAmount = :currentAmount, '
            'firstSeenAt = :firstSeenAt, lastSeenAt = :lastSeenAt, '
            'transactionCount = :transactionCount, isActive = :active, updatedAt = :now'
        ),
        ExpressionAttributeValues={
            ':id': item['recurringChargeId'],
            ':now': now,
            ':merchantId': item['merchantId'],
            ':frequency': item['frequency'],
            ':confidence': item['confidence'],
            ':firstAmount': item['firstAmount'],
            ':currentAmount': item['currentAmount'],
            ':firstSeenAt': item['firstSeenAt'],
            ':lastSeenAt': item['lastSeenAt'],
            ':transactionCount': item['transactionCount'],
            ':active': 'true',
        },
        ReturnValues='ALL_NEW'
    )
    return RecurringCharge.from_dynamodb_item(response['Attributes'])


@monitor_performance(operation_type="query", warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_recurring_charges")
def list_recurring_charges(user_id: str, active_only: bool = False) -> List[RecurringCharge]:
    table = tables.require('recurring_charges')
    query_params: Dict[str, Any] = {'KeyConditionExpression': Key('userId').eq(user_id)}
    if active_only:
        query_params['FilterExpression'] = Attr('isActive').eq('true')

    charges, _ = paginated_query(
        table=table,
        query_params=query_params,
        transform=RecurringCharge.from_dynamodb_item
    )
    logger.debug(f"DB: Found {len(charges)} recurring charges for user {user_id}")
    return charges


def _list_merchant_charges(user_id: str, merchant_id: uuid.UUID) -> List[RecurringCharge]:
    table = tables.require('recurring_charges')
    charges, _ = paginated_query(
        table=table,
        query_params={
            'KeyConditionExpression': (
                Key('userId').eq(user_id) & Key('chargeKey').begins_with(_merchant_prefix(merchant_id))
            )
        },
        transform=RecurringCharge.from_dynamodb_item
    )
    return charges


@monitor_performance(operation_type="query", warn_threshold_ms=300)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_recurring_charge_for_merchant")
def get_recurring_charge_for_merchant(user_id: str, merchant_id: uuid.UUID) -> Optional[RecurringCharge]:
    """
    Return the merchant's most relevant charge: active before inactive,
    then highest confidence.
    """
    charges = _list_merchant_charges(user_id, merchant_id)
    if not charges:
        return None
    return max(charges, key=lambda c: (c.is_active, c.confidence))


@monitor_performance(warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("deactivate_merchant_charges")
def deactivate_merchant_charges(user_id: str, merchant_id: uuid.UUID) -> int:
    """
    Mark every charge for a merchant inactive.

    Returns:
        Number of charges deactivated
    """
    table = tables.require('recurring_charges')
    now = current_timestamp()
    count = 0
    for charge in _list_merchant_charges(user_id, merchant_id):
        if not charge.is_active:
            continue
        table.update_item(
            Key={'userId': user_id, 'chargeKey': charge.charge_key},
            UpdateExpression='SET isActive = :inactive, updatedAt = :now',
            ExpressionAttributeValues={':inactive': 'false', ':now': now}
        )
        count += 1
    logger.info(f"DB: Deactivated {count} recurring charges for merchant {str(merchant_id)}")
    return count


# ============================================================================
# Price Change Operations
# ============================================================================

@monitor_performance(operation_type="query", warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_price_changes")
def list_price_changes(recurring_charge_id: uuid.UUID) -> List[PriceChangeEvent]:
    """List a charge's price changes in ascending detection order."""
    table = tables.require('price_changes')
    events, _ = paginated_query(
        table=table,
        query_params={
            'KeyConditionExpression': Key('recurringChargeId').eq(to_db_id(recurring_charge_id)),
            'ScanIndexForward': True,
        },
        transform=PriceChangeEvent.from_dynamodb_item
    )
    return events


def _charge_update_action(charge: RecurringCharge, table_name: str) -> Dict[str, Any]:
    return {
        'Update': {
            'TableName': table_name,
            'Key': serialize_item({'userId': charge.user_id, 'chargeKey': charge.charge_key}),
            'UpdateExpression': 'SET currentAmount = :amount, lastSeenAt = :seen, updatedAt = :now',
            'ExpressionAttributeValues': serialize_item({
                ':amount': charge.current_amount,
                ':seen': charge.last_seen_at.isoformat(),
                ':now': charge.updated_at,
            }),
        }
    }


def _event_put_action(event: PriceChangeEvent, table_name: str) -> Dict[str, Any]:
    return {
        'Put': {
            'TableName': table_name,
            'Item': serialize_item(event.to_dynamodb_item()),
            'ConditionExpression': 'attribute_not_exists(detectedAt)',
        }
    }


@monitor_performance(operation_type="transact_write", warn_threshold_ms=1000)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("commit_price_changes")
def commit_price_changes(charge: RecurringCharge, events: Sequence[PriceChangeEvent]) -> int:
    """
    Write new price change events together with the owning charge update.

    Events whose (recurringChargeId, detectedAt) key already exists, in the
    table or earlier in the batch, are dropped. Batches larger than one
    transaction are split; the charge update rides in the final transaction.
    Only each transaction is atomic: if a later one fails, earlier events stay
    written and the charge is not advanced. Re-running the commit skips the
    stored events and finishes the rest with the update.

    Returns:
        Number of events inserted
    """
    charges_table = tables.require('recurring_charges')
    changes_table = tables.require('price_changes')

    seen = {event.detected_at for event in list_price_changes(charge.recurring_charge_id)}
    new_events: List[PriceChangeEvent] = []
    for event in events:
        if event.detected_at in seen:
            continue
        seen.add(event.detected_at)
        new_events.append(event)

    update_action = _charge_update_action(charge, charges_table.table_name)
    event_actions = [_event_put_action(e, changes_table.table_name) for e in new_events]

    batches = list(chunked(event_actions, MAX_TRANSACT_ITEMS - 1)) or [[]]
    for index, batch in enumerate(batches):
        actions = list(batch)
        if index == len(batches) - 1:
            actions.append(update_action)
        tables.client.transact_write_items(TransactItems=actions)

    logger.info(
        f"DB: Committed {len(new_events)} price changes for charge {str(charge.recurring_charge_id)}",
        extra={'skipped_duplicates': len(events) - len(new_events)}
    )
    return len(new_events)
