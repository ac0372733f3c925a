"""
Merchant and merchant alias database operations.

Merchants are keyed on (userId, canonicalName), which makes the canonical
name unique per user. Aliases are keyed on (userId, rawName) and written with
a conditional put so that a raw string is bound to exactly one merchant.
"""

import logging
import uuid
from typing import List, Optional

from boto3.dynamodb.conditions import Key

from models.merchant import Merchant, MerchantAlias
from .base import (
    tables,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
    ConflictError,
)
from .helpers import current_timestamp, paginated_query, to_db_id

logger = logging.getLogger(__name__)

MERCHANT_ID_INDEX = 'MerchantIdIndex'


# ============================================================================
# Alias Operations
# ============================================================================

@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_alias")
def get_alias(user_id: str, raw_name: str) -> Optional[MerchantAlias]:
    """Look up the merchant binding for an exact raw description."""
    table = tables.require('merchant_aliases')
    response = table.get_item(Key={'userId': user_id, 'rawName': raw_name})
    item = response.get('Item')
    if not item:
        return None
    return MerchantAlias.from_dynamodb_item(item)


@retry_on_throttle(max_attempts=3)
@dynamodb_operation("create_alias")
def create_alias(alias: MerchantAlias) -> MerchantAlias:
    """
    Persist a new alias. Raises ConflictError if the raw name is already
    bound for this user; existing aliases are never overwritten.
    """
    table = tables.require('merchant_aliases')
    table.put_item(
        Item=alias.to_dynamodb_item(),
        ConditionExpression='attribute_not_exists(rawName)'
    )
    logger.info(f"DB: Alias created for merchant {str(alias.merchant_id)}")
    return alias


# ============================================================================
# Merchant Operations
# ============================================================================

@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_merchant_by_name")
def get_merchant_by_name(user_id: str, canonical_name: str) -> Optional[Merchant]:
    table = tables.require('merchants')
    response = table.get_item(Key={'userId': user_id, 'canonicalName': canonical_name})
    item = response.get('Item')
    if not item:
        return None
    return Merchant.from_dynamodb_item(item)


@monitor_performance(warn_threshold_ms=200)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("get_merchant_by_id")
def get_merchant_by_id(merchant_id: uuid.UUID) -> Optional[Merchant]:
    """Retrieve a merchant by ID (no user validation)."""
    table = tables.require('merchants')
    response = table.query(
        IndexName=MERCHANT_ID_INDEX,
        KeyConditionExpression=Key('merchantId').eq(to_db_id(merchant_id)),
        Limit=1
    )
    items = response.get('Items', [])
    if not items:
        return None
    return Merchant.from_dynamodb_item(items[0])


@monitor_performance(operation_type="query", warn_threshold_ms=500)
@retry_on_throttle(max_attempts=3)
@dynamodb_operation("list_user_merchants")
def list_user_merchants(user_id: str) -> List[Merchant]:
    table = tables.require('merchants')
    merchants, _ = paginated_query(
        table=table,
        query_params={'KeyConditionExpression': Key('userId').eq(user_id)},
        transform=Merchant.from_dynamodb_item
    )
    logger.debug(f"DB: Found {len(merchants)} merchants for user {user_id}")
    return merchants


@retry_on_throttle(max_attempts=3)
@dynamodb_operation("create_merchant")
def create_merchant(merchant: Merchant) -> Merchant:
    """
    Persist a new merchant. Raises ConflictError if the user already has a
    merchant with the same canonical name.
    """
    table = tables.require('merchants')
    table.put_item(
        Item=merchant.to_dynamodb_item(),
        ConditionExpression='attribute_not_exists(canonicalName)'
    )
    logger.info(f"DB: Merchant {str(merchant.merchant_id)} created: {merchant.canonical_name}")
    return merchant


@retry_on_throttle(max_attempts=3)
@dynamodb_operation("add_merchant_raw_name")
def add_merchant_raw_name(merchant: Merchant, raw_name: str) -> Merchant:
    """
    Append a raw spelling to the merchant's alias list. Raises ConflictError
    if the spelling is already recorded.
    """
    table = tables.require('merchants')
    now = current_timestamp()
    table.update_item(
        Key={'userId': merchant.user_id, 'canonicalName': merchant.canonical_name},
        UpdateExpression=(
            'SET rawNameAliases = list_append(if_not_exists(rawNameAliases, :empty), :raw), '
            'updatedAt = :now'
        ),
        ConditionExpression='attribute_exists(canonicalName) AND NOT contains(rawNameAliases, :rawValue)',
        ExpressionAttributeValues={
            ':empty': [],
            ':raw': [raw_name],
            ':rawValue': raw_name,
            ':now': now,
        }
    )
    merchant.raw_name_aliases.add(raw_name)
    merchant.updated_at = now
    return merchant


@retry_on_throttle(max_attempts=3)
@dynamodb_operation("set_merchant_excluded_in_db")
def set_merchant_excluded_in_db(merchant: Merchant, excluded: bool) -> Merchant:
    table = tables.require('merchants')
    now = current_timestamp()
    table.update_item(
        Key={'userId': merchant.user_id, 'canonicalName': merchant.canonical_name},
        UpdateExpression='SET excluded = :excluded, updatedAt = :now',
        ExpressionAttributeValues={':excluded': excluded, ':now': now}
    )
    merchant.excluded = excluded
    merchant.updated_at = now
    logger.info(f"DB: Merchant {str(merchant.merchant_id)} excluded={excluded}")
    return merchant


class DynamoDBMerchantRepository:
    """Merchant store used by the resolver, backed by the functions above."""

    def get_alias(self, user_id: str, raw_name: str) -> Optional[MerchantAlias]:
        return get_alias(user_id, raw_name)

    def get_merchant_by_name(self, user_id: str, canonical_name: str) -> Optional[Merchant]:
        return get_merchant_by_name(user_id, canonical_name)

    def list_merchants(self, user_id: str) -> List[Merchant]:
        return list_user_merchants(user_id)

    def create_merchant(self, merchant: Merchant) -> Merchant:
        return create_merchant(merchant)

    def add_raw_name(self, merchant: Merchant, raw_name: str) -> None:
        try:
            add_merchant_raw_name(merchant, raw_name)
        except ConflictError:
            logger.debug(f"Raw name already recorded for merchant {str(merchant.merchant_id)}")

    def create_alias(self, alias: MerchantAlias) -> MerchantAlias:
        return create_alias(alias)
