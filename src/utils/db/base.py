"""
Core database infrastructure.

This module provides:
- DynamoDB table management
- Decorators for cross-cutting concerns
- Common exceptions
- Base helper functions
"""

import os
import logging
import boto3
import uuid
import time
from typing import Dict, Any, Optional, Tuple, Callable, TypeVar, Protocol
from functools import wraps
from botocore.exceptions import ClientError
from pydantic import ValidationError

# Configure logging
logger = logging.getLogger(__name__)

# ============================================================================
# Protocols
# ============================================================================

class HasUserId(Protocol):
    """Protocol for resources that have a user_id attribute."""
    user_id: str


# Type variables
T = TypeVar('T')
TResource = TypeVar('TResource', bound=HasUserId)

# DynamoDB error codes that mean "a concurrent writer got there first"
CONFLICT_ERROR_CODES = (
    'ConditionalCheckFailedException',
    'TransactionCanceledException',
)

THROTTLE_ERROR_CODES = (
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
)

# ============================================================================
# Exceptions
# ============================================================================

class NotAuthorized(Exception):
    """Raised when a user is not authorized to access a resource."""
    pass

class NotFound(Exception):
    """Raised when a requested resource is not found."""
    pass

class ConflictError(Exception):
    """Raised when a conditional write loses to a concurrent writer."""
    pass

class StorageError(Exception):
    """Raised when the backing store fails or is not configured."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


def _client_error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', 'Unknown')


# ============================================================================
# Decorators
# ============================================================================

def dynamodb_operation(operation_name: Optional[str] = None):
    """
    Decorator for consistent DynamoDB error handling and logging.

    Features:
    - Automatic error logging with stack traces
    - Structured logging with operation context
    - Maps conditional-write failures to ConflictError
    - Maps every other ClientError to StorageError

    Usage:
        @dynamodb_operation("get_merchant_by_name")
        def get_merchant_by_name(user_id: str, name: str) -> Optional[Merchant]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            op_name = operation_name or func.__name__
            try:
                logger.debug(f"Starting {op_name}")
                result = func(*args, **kwargs)
                logger.debug(f"Successfully completed {op_name}")
                return result
            except ClientError as e:
                error_code = _client_error_code(e)
                error_msg = e.response.get('Error', {}).get('Message', str(e))
                if error_code in CONFLICT_ERROR_CODES:
                    logger.info(
                        f"Conditional write conflict in {op_name}: {error_code}",
                        extra={'operation': op_name, 'error_code': error_code}
                    )
                    raise ConflictError(f"{op_name}: {error_msg}") from e
                logger.error(
                    f"DynamoDB error in {op_name}: {error_code} - {error_msg}",
                    exc_info=True,
                    extra={
                        'operation': op_name,
                        'error_code': error_code,
                        'function': func.__name__
                    }
                )
                raise StorageError(f"{op_name} failed: {error_code} - {error_msg}", error_code) from e
            except ValidationError as e:
                logger.error(
                    f"Validation error in {op_name}: {str(e)}",
                    exc_info=True,
                    extra={'operation': op_name}
                )
                raise ValueError(f"Invalid data in {op_name}: {str(e)}")
        return wrapper
    return decorator


def retry_on_throttle(
    max_attempts: int = 3,
    base_delay: float = 0.1,
    max_delay: float = 5.0,
    exponential_base: float = 2,
    retry_on: Tuple[str, ...] = THROTTLE_ERROR_CODES
):
    """
    Decorator to retry DynamoDB operations on throttling with exponential backoff.

    Works both directly over boto3 calls (ClientError) and over functions
    already wrapped by dynamodb_operation (StorageError carrying the code).

    Algorithm:
        Attempt 1: immediate
        Attempt 2: wait base_delay * (2^0) = 0.1s
        Attempt 3: wait base_delay * (2^1) = 0.2s
        ...
        Up to max_delay

    Usage:
        @retry_on_throttle(max_attempts=5, base_delay=0.1)
        @dynamodb_operation("list_user_transactions")
        def list_user_transactions(...):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except (ClientError, StorageError) as e:
                    if isinstance(e, ClientError):
                        error_code = _client_error_code(e)
                    else:
                        error_code = e.error_code or 'Unknown'

                    if error_code not in retry_on or attempt >= max_attempts - 1:
                        raise

                    delay = min(
                        base_delay * (exponential_base ** attempt),
                        max_delay
                    )
                    logger.warning(
                        f"Throttled on {func.__name__} "
                        f"(attempt {attempt + 1}/{max_attempts}), "
                        f"retrying in {delay:.2f}s... "
                        f"Error: {error_code}"
                    )
                    time.sleep(delay)
            raise RuntimeError(f"Unexpected state in retry_on_throttle for {func.__name__}")
        return wrapper
    return decorator


def monitor_performance(
    operation_type: str = "db_operation",
    warn_threshold_ms: float = 1000,
    error_threshold_ms: float = 5000
):
    """
    Decorator to monitor and log operation performance.

    Thresholds:
    - Debug: < warn_threshold_ms (normal operation)
    - Warning: warn_threshold_ms to error_threshold_ms (slow)
    - Error: > error_threshold_ms (very slow, investigate)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            start_time = time.time()

            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.time() - start_time) * 1000

                log_context = {
                    'operation': func.__name__,
                    'operation_type': operation_type,
                    'elapsed_ms': elapsed_ms
                }

                if elapsed_ms > error_threshold_ms:
                    logger.error(
                        f"SLOW OPERATION: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {error_threshold_ms}ms)",
                        extra=log_context
                    )
                elif elapsed_ms > warn_threshold_ms:
                    logger.warning(
                        f"Slow operation: {func.__name__} took {elapsed_ms:.2f}ms "
                        f"(threshold: {warn_threshold_ms}ms)",
                        extra=log_context
                    )
                else:
                    logger.debug(
                        f"{func.__name__} completed in {elapsed_ms:.2f}ms",
                        extra=log_context
                    )
        return wrapper
    return decorator


# ============================================================================
# Table Management
# ============================================================================

class DynamoDBTables:
    """
    Singleton for managing DynamoDB table resources.

    Features:
    - Lazy initialization (tables created on first access)
    - Singleton pattern (one instance per application)
    - Automatic table name lookup from environment variables
    - require() raises StorageError for unconfigured tables

    Usage:
        tables = DynamoDBTables()
        merchants = tables.require('merchants')
        charges = tables.require('recurring_charges')
    """
    _instance: Optional['DynamoDBTables'] = None

    # Table name to environment variable mapping
    TABLE_CONFIGS = {
        'merchants': 'MERCHANTS_TABLE',
        'merchant_aliases': 'MERCHANT_ALIASES_TABLE',
        'transactions': 'TRANSACTIONS_TABLE',
        'recurring_charges': 'RECURRING_CHARGES_TABLE',
        'price_changes': 'PRICE_CHANGES_TABLE',
    }

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._dynamodb = None
            self._client = None
            self._tables: Dict[str, Any] = {}
            self._initialized = True

    def _resource(self) -> Any:
        if self._dynamodb is None:
            self._dynamodb = boto3.resource('dynamodb')
        return self._dynamodb

    def _get_table(self, table_key: str) -> Optional[Any]:
        """Get table resource with lazy initialization."""
        if table_key not in self._tables:
            env_var_name = self.TABLE_CONFIGS.get(table_key)
            if not env_var_name:
                logger.error(f"Unknown table key: {table_key}")
                return None

            table_name = os.environ.get(env_var_name)
            if not table_name:
                logger.warning(
                    f"Environment variable {env_var_name} not set, "
                    f"table '{table_key}' unavailable"
                )
                return None

            self._tables[table_key] = self._resource().Table(table_name)
            logger.info(f"Initialized table: {table_key} ({table_name})")

        return self._tables.get(table_key)

    def require(self, table_key: str) -> Any:
        """Get a table resource, raising StorageError if it is not configured."""
        table = self._get_table(table_key)
        if table is None:
            raise StorageError(f"Table '{table_key}' is not configured")
        return table

    @property
    def client(self) -> Any:
        """Low-level DynamoDB client, used for transactional writes."""
        if self._client is None:
            self._client = boto3.client('dynamodb')
        return self._client


# Global instance
tables = DynamoDBTables()


# ============================================================================
# Helper Functions
# ============================================================================

def check_user_owns_resource(resource_user_id: str, requesting_user_id: str) -> None:
    """
    Check if a user owns a resource.

    Raises:
        NotAuthorized: If the user doesn't own the resource
    """
    if resource_user_id != requesting_user_id:
        raise NotAuthorized("Not authorized to access this resource")


def checked_mandatory_resource(
    resource_id: Optional[uuid.UUID],
    user_id: str,
    getter_func: Callable[[uuid.UUID], Optional[TResource]],
    resource_name: str
) -> TResource:
    """
    Generic mandatory resource checker with user validation.

    Raises:
        NotFound: If resource_id is None, or resource doesn't exist
        NotAuthorized: If user doesn't own the resource

    Example:
        merchant = checked_mandatory_resource(
            merchant_id,
            user_id,
            get_merchant_by_id,
            "Merchant"
        )
    """
    if not resource_id:
        raise NotFound(f"{resource_name} ID is required")

    resource = getter_func(resource_id)
    if not resource:
        raise NotFound(f"{resource_name} not found")

    check_user_owns_resource(resource.user_id, user_id)
    return resource
