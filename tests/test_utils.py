"""
Tests for sequence helpers and retry logic.
"""

import requests

from couch_backup.config.models import RetryConfig
from couch_backup.exceptions import StoreRequestError
from couch_backup.utils import (
    is_retryable_error,
    retry_with_logging,
    sequence_greater,
    sequence_key,
)


class TestSequences:
    """Test ordering of sequence tokens."""

    def test_integer_tokens(self):
        assert sequence_greater(12, 8)
        assert not sequence_greater(8, 12)
        assert not sequence_greater(8, 8)

    def test_missing_current_token(self):
        assert sequence_greater(0, None)
        assert sequence_greater("5", None)
        assert not sequence_greater(None, None)

    def test_clustered_string_tokens(self):
        assert sequence_greater("25-g1AAAABXeJzLYWBg", "20-g1AAAAAZZZ")
        assert not sequence_greater("3-abc", "20-def")

    def test_mixed_tokens(self):
        assert sequence_greater("25", 20)
        assert sequence_key("0") < sequence_key(1)


class TestRetryableErrors:
    """Test classification of errors."""

    def test_transport_errors_are_retryable(self):
        assert is_retryable_error(requests.ConnectionError())
        assert is_retryable_error(StoreRequestError("boom"))

    def test_status_codes(self):
        assert is_retryable_error(StoreRequestError("busy", status_code=503))
        assert not is_retryable_error(StoreRequestError("gone", status_code=404))

    def test_unrelated_errors_are_not_retried(self):
        assert not is_retryable_error(ValueError("bad"))


class TestRetryWithLogging:
    """Test the retry decorator."""

    def test_success_on_first_try(self, logger):
        calls = [0]

        @retry_with_logging(RetryConfig(max_attempts=3, retry_delay_seconds=0), logger)
        def succeeds():
            calls[0] += 1
            return "done"

        assert succeeds() == ("done", None, 1, 3)
        assert calls[0] == 1

    def test_retry_then_succeed(self, logger):
        calls = [0]

        @retry_with_logging(RetryConfig(max_attempts=3, retry_delay_seconds=0), logger)
        def flaky():
            calls[0] += 1
            if calls[0] < 3:
                raise StoreRequestError("unavailable", status_code=503)
            return True

        result, error, attempt, max_attempts = flaky()

        assert result is True
        assert error is None
        assert attempt == 3
        assert max_attempts == 3

    def test_exhausted_retries_return_last_error(self, logger):
        @retry_with_logging(RetryConfig(max_attempts=2, retry_delay_seconds=0), logger)
        def always_fails():
            raise StoreRequestError("unavailable", status_code=503)

        result, error, attempt, _ = always_fails()

        assert result is False
        assert isinstance(error, StoreRequestError)
        assert attempt == 2

    def test_permanent_errors_are_not_retried(self, logger):
        calls = [0]

        @retry_with_logging(RetryConfig(max_attempts=5, retry_delay_seconds=0), logger)
        def missing():
            calls[0] += 1
            raise StoreRequestError("not found", status_code=404)

        result, error, attempt, _ = missing()

        assert result is False
        assert error.status_code == 404
        assert attempt == 1
        assert calls[0] == 1
