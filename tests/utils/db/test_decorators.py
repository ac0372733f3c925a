"""
Unit tests for database decorators.

Tests the decorator functionality including:
- Error mapping (dynamodb_operation)
- Retry logic (retry_on_throttle)
- Performance monitoring (monitor_performance)
"""

import os
import unittest
from unittest.mock import Mock, patch
from botocore.exceptions import ClientError

from utils.db.base import (
    ConflictError,
    DynamoDBTables,
    StorageError,
    dynamodb_operation,
    retry_on_throttle,
    monitor_performance,
)


def client_error(code: str, operation: str = 'PutItem') -> ClientError:
    return ClientError({'Error': {'Code': code, 'Message': code}}, operation)


class TestDynamoDBOperationDecorator(unittest.TestCase):
    """Tests for @dynamodb_operation decorator."""

    def test_successful_operation(self):
        @dynamodb_operation("test_op")
        def successful_function():
            return "success"

        self.assertEqual(successful_function(), "success")

    def test_conditional_check_becomes_conflict(self):
        """A lost conditional write is a ConflictError, not a failure."""
        @dynamodb_operation("test_op")
        def conflicting_function():
            raise client_error('ConditionalCheckFailedException')

        with self.assertRaises(ConflictError):
            conflicting_function()

    def test_cancelled_transaction_becomes_conflict(self):
        @dynamodb_operation("test_op")
        def conflicting_function():
            raise client_error('TransactionCanceledException', 'TransactWriteItems')

        with self.assertRaises(ConflictError):
            conflicting_function()

    def test_other_client_errors_become_storage_errors(self):
        @dynamodb_operation("test_op")
        def failing_function():
            raise client_error('ResourceNotFoundException', 'GetItem')

        with self.assertRaises(StorageError) as context:
            failing_function()
        self.assertEqual(context.exception.error_code, 'ResourceNotFoundException')
        self.assertIn("test_op", str(context.exception))

    def test_validation_error_converted(self):
        """Test ValidationError is converted to ValueError."""
        from pydantic import BaseModel

        class TestModel(BaseModel):
            value: int

        @dynamodb_operation("test_op")
        def validation_failing_function():
            TestModel(value="not a number")

        with self.assertRaises(ValueError) as context:
            validation_failing_function()
        self.assertIn("Invalid data", str(context.exception))

    def test_generic_exception_passes_through(self):
        @dynamodb_operation("test_op")
        def failing_function():
            raise KeyError("missing")

        with self.assertRaises(KeyError):
            failing_function()


class TestRetryOnThrottleDecorator(unittest.TestCase):
    """Tests for @retry_on_throttle decorator."""

    @patch('utils.db.base.time.sleep')
    def test_retries_on_throttle(self, mock_sleep):
        mock_func = Mock(side_effect=[client_error('ThrottlingException'), "success"])
        mock_func.__name__ = 'mock_func'

        result = retry_on_throttle(max_attempts=3)(mock_func)()

        self.assertEqual(result, "success")
        self.assertEqual(mock_func.call_count, 2)
        mock_sleep.assert_called_once()

    @patch('utils.db.base.time.sleep')
    def test_retries_storage_error_with_throttle_code(self, mock_sleep):
        """Works when stacked over dynamodb_operation."""
        attempts = []

        @retry_on_throttle(max_attempts=3)
        @dynamodb_operation("throttled_op")
        def throttled():
            attempts.append(1)
            if len(attempts) < 3:
                raise client_error('ProvisionedThroughputExceededException')
            return "ok"

        self.assertEqual(throttled(), "ok")
        self.assertEqual(len(attempts), 3)

    @patch('utils.db.base.time.sleep')
    def test_gives_up_after_max_attempts(self, mock_sleep):
        mock_func = Mock(side_effect=client_error('ThrottlingException'))
        mock_func.__name__ = 'mock_func'

        with self.assertRaises(ClientError):
            retry_on_throttle(max_attempts=3)(mock_func)()
        self.assertEqual(mock_func.call_count, 3)

    @patch('utils.db.base.time.sleep')
    def test_does_not_retry_non_throttle_errors(self, mock_sleep):
        mock_func = Mock(side_effect=StorageError("boom", 'ValidationException'))
        mock_func.__name__ = 'mock_func'

        with self.assertRaises(StorageError):
            retry_on_throttle(max_attempts=3)(mock_func)()
        self.assertEqual(mock_func.call_count, 1)
        mock_sleep.assert_not_called()

    @patch('utils.db.base.time.sleep')
    def test_conflicts_are_not_retried(self, mock_sleep):
        mock_func = Mock(side_effect=ConflictError("taken"))
        mock_func.__name__ = 'mock_func'

        with self.assertRaises(ConflictError):
            retry_on_throttle(max_attempts=3)(mock_func)()
        self.assertEqual(mock_func.call_count, 1)

    @patch('utils.db.base.time.sleep')
    def test_exponential_backoff(self, mock_sleep):
        mock_func = Mock(side_effect=[
            client_error('ThrottlingException'),
            client_error('ThrottlingException'),
            client_error('ThrottlingException'),
            "success",
        ])
        mock_func.__name__ = 'mock_func'

        retry_on_throttle(max_attempts=4, base_delay=0.1, max_delay=0.3)(mock_func)()

        delays = [c.args[0] for c in mock_sleep.call_args_list]
        self.assertEqual(len(delays), 3)
        self.assertAlmostEqual(delays[0], 0.1)
        self.assertAlmostEqual(delays[1], 0.2)
        self.assertAlmostEqual(delays[2], 0.3)


class TestMonitorPerformanceDecorator(unittest.TestCase):
    """Tests for @monitor_performance decorator."""

    def test_function_result_preserved(self):
        @monitor_performance()
        def compute():
            return {"key": "value"}

        self.assertEqual(compute(), {"key": "value"})

    @patch('utils.db.base.logger')
    def test_slow_operation_warns(self, mock_logger):
        @monitor_performance(warn_threshold_ms=-1, error_threshold_ms=10_000)
        def slow():
            return 1

        slow()
        mock_logger.warning.assert_called_once()

    def test_exception_still_raised(self):
        @monitor_performance()
        def failing():
            raise ValueError("Test error")

        with self.assertRaises(ValueError):
            failing()


class TestDynamoDBTables(unittest.TestCase):
    """Tests for the table registry."""

    def setUp(self):
        self.tables = DynamoDBTables()
        self.tables._tables.clear()
        self.tables._dynamodb = None

    def tearDown(self):
        self.tables._tables.clear()
        self.tables._dynamodb = None

    def test_singleton(self):
        self.assertIs(DynamoDBTables(), self.tables)

    @patch('utils.db.base.boto3')
    def test_require_resolves_name_from_environment(self, mock_boto3):
        with patch.dict(os.environ, {'PRICE_CHANGES_TABLE': 'price-changes-dev'}):
            table = self.tables.require('price_changes')
            again = self.tables.require('price_changes')

        self.assertIs(table, again)
        mock_boto3.resource.return_value.Table.assert_called_once_with('price-changes-dev')

    @patch('utils.db.base.boto3')
    def test_require_unconfigured_table_raises(self, mock_boto3):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(StorageError):
                self.tables.require('merchants')

        mock_boto3.resource.assert_not_called()

    def test_require_unknown_key_raises(self):
        with self.assertRaises(StorageError):
            self.tables.require('accounts')


if __name__ == '__main__':
    unittest.main()
