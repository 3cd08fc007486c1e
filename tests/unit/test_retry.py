"""
Unit tests for tablesync.utils.retry
"""

import sqlite3
from unittest.mock import Mock, patch

import pytest

from tablesync.utils.retry import backoff_delay, is_retryable_db_exception, retry_database_operation


class OperationalError(Exception):
    """Stand-in for a driver's OperationalError"""


class TestIsRetryableDbException:
    """Test transient error classification"""

    @pytest.mark.parametrize(
        "message",
        [
            "Connection refused",
            "Query timed out after 30s",
            "Deadlock found when trying to get lock",
            "MySQL server has gone away",
            "ORA-03113: end-of-file on communication channel",
            "database is locked",
        ],
    )
    def test_retryable_messages(self, message):
        """Test known transient messages are retryable"""
        assert is_retryable_db_exception(Exception(message)) is True

    def test_retryable_exception_name(self):
        """Test driver OperationalError types are retryable"""
        assert is_retryable_db_exception(OperationalError("anything")) is True
        assert is_retryable_db_exception(sqlite3.OperationalError("no such table: t")) is True

    @pytest.mark.parametrize(
        "exception",
        [
            ValueError("invalid literal"),
            Exception("syntax error at or near SELECT"),
            Exception("permission denied for table t"),
        ],
    )
    def test_non_retryable(self, exception):
        """Test permanent failures are not retried"""
        assert is_retryable_db_exception(exception) is False


class TestBackoffDelay:
    """Test exponential backoff"""

    @patch("tablesync.utils.retry.random.uniform", return_value=0.0)
    def test_doubles_per_attempt(self, mock_uniform):
        """Test delay doubles until capped"""
        assert backoff_delay(0, 1.0, 30.0) == 1.0
        assert backoff_delay(2, 1.0, 30.0) == 4.0
        assert backoff_delay(10, 1.0, 30.0) == 30.0

    def test_jitter_bounds(self):
        """Test jitter stays within 25% of the delay"""
        for _ in range(50):
            assert 0.75 <= backoff_delay(0, 1.0, 30.0) <= 1.25

    @patch("tablesync.utils.retry.random.uniform", return_value=-1.0)
    def test_minimum_delay(self, mock_uniform):
        """Test delay never drops below 0.1s"""
        assert backoff_delay(0, 0.01, 30.0) == 0.1


class TestRetryDatabaseOperation:
    """Test the retry decorator"""

    @patch("tablesync.utils.retry.time.sleep")
    def test_success_without_retry(self, mock_sleep):
        """Test a successful call runs once"""
        func = Mock(return_value=42, __name__="read")

        assert retry_database_operation()(func)() == 42
        assert func.call_count == 1
        mock_sleep.assert_not_called()

    @patch("tablesync.utils.retry.time.sleep")
    def test_retries_transient_error(self, mock_sleep):
        """Test transient errors are retried until success"""
        func = Mock(side_effect=[Exception("connection reset"), Exception("timeout"), "rows"], __name__="read")
        on_retry = Mock()

        wrapped = retry_database_operation(max_retries=3, base_delay=0.5, on_retry=on_retry)(func)

        assert wrapped("arg") == "rows"
        assert func.call_count == 3
        assert mock_sleep.call_count == 2
        assert [c.args[0] for c in on_retry.call_args_list] == [1, 2]
        func.assert_called_with("arg")

    @patch("tablesync.utils.retry.time.sleep")
    def test_gives_up_after_max_retries(self, mock_sleep):
        """Test the last transient error is re-raised"""
        func = Mock(side_effect=Exception("deadlock"), __name__="read")

        with pytest.raises(Exception, match="deadlock"):
            retry_database_operation(max_retries=2)(func)()

        assert func.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("tablesync.utils.retry.time.sleep")
    def test_non_retryable_raises_immediately(self, mock_sleep):
        """Test permanent errors are not retried"""
        func = Mock(side_effect=ValueError("bad"), __name__="read")

        with pytest.raises(ValueError):
            retry_database_operation(max_retries=5)(func)()

        assert func.call_count == 1
        mock_sleep.assert_not_called()
