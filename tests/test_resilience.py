"""Tests for retry with exponential backoff."""

import httpx
import pytest

from synthlabs.core.cancellation import CancellationToken
from synthlabs.core.errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    MissingFieldsError,
    OperationCancelledError,
    ProviderHTTPError,
)
from synthlabs.core.resilience import RetryPolicy, backoff_delay, call_with_retry, is_retryable


class FlakyOperation:
    """Fails with the queued errors, then returns `result`."""

    def __init__(self, errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


class TestBackoff:
    """Test the backoff schedule."""

    def test_formula(self):
        """Test base * 2^attempt for several bases."""
        for base in (0.5, 1.0, 2.0):
            assert [backoff_delay(n, base) for n in range(4)] == [base, base * 2, base * 4, base * 8]

    def test_policy_from_settings(self, settings):
        policy = RetryPolicy.from_settings(settings)

        assert policy.max_retries == 3
        assert policy.base_delay == 2.0
        assert policy.max_attempts == 4

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError, match="max_retries"):
            RetryPolicy(max_retries=-1)
        with pytest.raises(ValueError, match="base_delay"):
            RetryPolicy(base_delay=-0.5)


class TestRetryClassification:
    """Test which errors are retried."""

    def test_retryable(self):
        assert is_retryable(ProviderHTTPError("openai", 429))
        assert is_retryable(ProviderHTTPError("openai", 503))
        assert is_retryable(httpx.ConnectError("refused"))
        assert is_retryable(EmptyResponseError("empty"))
        assert is_retryable(MalformedResponseError("bad body"))

    def test_final(self):
        assert not is_retryable(ProviderHTTPError("openai", 400))
        assert not is_retryable(ProviderHTTPError("openai", 401))
        assert not is_retryable(ConfigurationError("no url"))
        assert not is_retryable(MissingFieldsError(["answer"]))
        assert not is_retryable(OperationCancelledError())


class TestCallWithRetry:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self, sleep):
        """Test that transient failures are retried with growing delays."""
        operation = FlakyOperation([ProviderHTTPError("openai", 503), httpx.ReadTimeout("slow")])

        result = await call_with_retry(operation, RetryPolicy(max_retries=3, base_delay=2.0), sleep=sleep)

        assert result == "ok"
        assert operation.calls == 3
        assert sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_final_error_not_retried(self, sleep):
        """Test that a client error is raised after one attempt."""
        operation = FlakyOperation([ProviderHTTPError("openai", 400, "bad request")])

        with pytest.raises(ProviderHTTPError) as exc_info:
            await call_with_retry(operation, RetryPolicy(), sleep=sleep)

        assert exc_info.value.status_code == 400
        assert operation.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, sleep):
        """Test that max_retries + 1 attempts are made before giving up."""
        operation = FlakyOperation([ProviderHTTPError("openai", 500, str(n)) for n in range(10)])

        with pytest.raises(ProviderHTTPError) as exc_info:
            await call_with_retry(operation, RetryPolicy(max_retries=3, base_delay=1.0), sleep=sleep)

        assert operation.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]
        assert exc_info.value.body == "3"

    @pytest.mark.asyncio
    async def test_zero_retries(self, sleep):
        operation = FlakyOperation([EmptyResponseError("empty")])

        with pytest.raises(EmptyResponseError):
            await call_with_retry(operation, RetryPolicy(max_retries=0), sleep=sleep)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, sleep):
        """Test that a fired token prevents any attempt."""
        token = CancellationToken()
        token.cancel()
        operation = FlakyOperation([])

        with pytest.raises(OperationCancelledError):
            await call_with_retry(operation, cancel=token, sleep=sleep)

        assert operation.calls == 0

    @pytest.mark.asyncio
    async def test_cancelled_between_attempts(self):
        """Test that cancelling during backoff stops the retries."""
        token = CancellationToken()
        operation = FlakyOperation([ProviderHTTPError("openai", 503)] * 3)

        async def cancelling_sleep(delay):
            token.cancel("user stop")

        with pytest.raises(OperationCancelledError, match="user stop"):
            await call_with_retry(operation, cancel=token, sleep=cancelling_sleep)

        assert operation.calls == 1
