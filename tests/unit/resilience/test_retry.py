"""Unit tests for retry logic"""
import pytest
from unittest.mock import AsyncMock, patch

from prayer_engine.exceptions import StoreError, ValidationError
from prayer_engine.resilience.retry import (
    BASE_DELAY,
    MAX_DELAY,
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
    with_retry,
)


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip real backoff delays"""
    with patch("prayer_engine.resilience.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


def test_is_retryable_error_transient_store_error():
    """Test that transient store errors are retryable"""
    assert is_retryable_error(StoreError("timeout")) == True
    assert is_retryable_error(StoreError("bad row", retryable=False)) == False


def test_is_retryable_error_non_retryable():
    """Test that non-store errors are never retried"""
    assert is_retryable_error(ValueError("Bad value")) == False
    assert is_retryable_error(ValidationError("amount must be >= 0", field="amount")) == False
    assert is_retryable_error(TimeoutError()) == False


def test_calculate_backoff():
    """Test exponential backoff calculation"""
    delay_0 = calculate_backoff(0)
    assert BASE_DELAY * 0.9 <= delay_0 <= BASE_DELAY * 1.1

    delay_2 = calculate_backoff(2)
    assert BASE_DELAY * 4 * 0.9 <= delay_2 <= BASE_DELAY * 4 * 1.1


def test_calculate_backoff_max_delay():
    """Test that backoff respects max delay"""
    assert calculate_backoff(20) <= MAX_DELAY * 1.1


@pytest.mark.asyncio
async def test_retry_with_backoff_success_first_try(no_sleep):
    """Test that function succeeds on first try"""
    call_count = 0

    async def successful_function():
        nonlocal call_count
        call_count += 1
        return "success"

    result = await retry_with_backoff(successful_function, max_retries=3)

    assert result == "success"
    assert call_count == 1
    no_sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_retry_with_backoff_success_after_retries(no_sleep):
    """Test that function succeeds after some retries"""
    attempt = 0

    async def flaky_function():
        nonlocal attempt
        attempt += 1
        if attempt < 3:
            raise StoreError("connection reset")
        return "success"

    result = await retry_with_backoff(flaky_function, max_retries=3)

    assert result == "success"
    assert attempt == 3
    assert no_sleep.await_count == 2


@pytest.mark.asyncio
async def test_retry_with_backoff_exhausted():
    """Test that retries are exhausted for persistent failures"""
    attempt = 0

    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise StoreError("Always fails")

    with pytest.raises(StoreError, match="Always fails"):
        await retry_with_backoff(always_fails, max_retries=3)

    # initial + 3 retries
    assert attempt == 4


@pytest.mark.asyncio
async def test_retry_with_backoff_non_retryable_error():
    """Test that permanent store errors are not retried"""
    attempt = 0

    async def permanent_failure():
        nonlocal attempt
        attempt += 1
        raise StoreError("constraint violated", retryable=False)

    with pytest.raises(StoreError):
        await retry_with_backoff(permanent_failure, max_retries=3)

    assert attempt == 1


@pytest.mark.asyncio
async def test_with_retry_decorator():
    """Test that @with_retry decorator works correctly"""
    attempt = 0

    @with_retry(max_retries=2)
    async def flaky_function(user_id):
        nonlocal attempt
        attempt += 1
        if attempt < 2:
            raise StoreError("Flaky error")
        return user_id

    assert await flaky_function("user-1") == "user-1"
    assert attempt == 2
    assert flaky_function.__name__ == "flaky_function"


@pytest.mark.asyncio
async def test_with_retry_decorator_exhausted():
    """Test that decorator respects max_retries limit"""
    attempt = 0

    @with_retry(max_retries=2)
    async def always_fails():
        nonlocal attempt
        attempt += 1
        raise StoreError("Always fails")

    with pytest.raises(StoreError):
        await always_fails()

    assert attempt == 3
