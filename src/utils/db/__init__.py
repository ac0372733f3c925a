"""
Database utilities for DynamoDB operations.

This module provides a clean interface for all database operations.
Imports are organized by resource type for easy navigation.
"""

# ============================================================================
# Core Infrastructure
# ============================================================================

from .base import (
    # Table management
    tables,
    DynamoDBTables,

    # Exceptions
    NotAuthorized,
    NotFound,
    ConflictError,
    StorageError,

    # Decorators
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,

    # Helper functions
    check_user_owns_resource,
    checked_mandatory_resource,
)

from .helpers import (
    to_db_id,
    current_timestamp,
    batch_write_items,
    paginated_query,
    serialize_item,
)

# ============================================================================
# Merchant Operations
# ============================================================================

from .merchants import (
    get_alias,
    create_alias,
    get_merchant_by_name,
    get_merchant_by_id,
    list_user_merchants,
    create_merchant,
    add_merchant_raw_name,
    set_merchant_excluded_in_db,
    DynamoDBMerchantRepository,
)

# ============================================================================
# Transaction Operations
# ============================================================================

from .transactions import (
    save_transactions,
    list_user_transactions,
)

# ============================================================================
# Recurring Charge Operations
# ============================================================================

from .recurring_charges import (
    upsert_recurring_charge,
    list_recurring_charges,
    get_recurring_charge_for_merchant,
    deactivate_merchant_charges,
    list_price_changes,
    commit_price_changes,
)

__all__ = [
    'tables',
    'DynamoDBTables',
    'NotAuthorized',
    'NotFound',
    'ConflictError',
    'StorageError',
    'dynamodb_operation',
    'retry_on_throttle',
    'monitor_performance',
    'check_user_owns_resource',
    'checked_mandatory_resource',
    'to_db_id',
    'current_timestamp',
    'batch_write_items',
    'paginated_query',
    'serialize_item',
    'get_alias',
    'create_alias',
    'get_merchant_by_name',
    'get_merchant_by_id',
    'list_user_merchants',
    'create_merchant',
    'add_merchant_raw_name',
    'set_merchant_excluded_in_db',
    'DynamoDBMerchantRepository',
    'save_transactions',
    'list_user_transactions',
    'upsert_recurring_charge',
    'list_recurring_charges',
    'get_recurring_charge_for_merchant',
    'deactivate_merchant_charges',
    'list_price_changes',
    'commit_price_changes',
]
