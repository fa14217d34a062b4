"""
Tests for transient-error classification and bounded backoff.
"""

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.errors import TransientStoreError, is_transient_store_error
from app.core.retry import backoff_delay, retry_transient


def locked() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.mark.parametrize(
    "exc, expected",
    [
        (locked(), True),
        (TimeoutError(), True),
        (ConnectionResetError(), True),
        (IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed")), False),
        (ValueError("bad"), False),
    ],
)
def test_transient_classification(exc, expected):
    assert is_transient_store_error(exc) is expected


def test_backoff_grows_and_is_capped():
    assert 0.2 <= backoff_delay(1, 0.2, 2.0) <= 0.4
    assert 0.4 <= backoff_delay(2, 0.2, 2.0) <= 0.6
    assert 2.0 <= backoff_delay(10, 0.2, 2.0) <= 2.2


@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    calls = []
    delays = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise locked()
        return "ok"

    async def sleep(delay):
        delays.append(delay)

    result = await retry_transient("op", flaky, attempts=3, base_delay=0.1, max_delay=1.0, sleep=sleep)

    assert result == "ok"
    assert len(calls) == 3
    assert len(delays) == 2
    assert delays[1] >= 0.2


@pytest.mark.asyncio
async def test_budget_exhaustion_raises_transient_store_error():
    async def always_locked():
        raise locked()

    async def sleep(delay):
        return None

    with pytest.raises(TransientStoreError) as exc_info:
        await retry_transient("allocate", always_locked, attempts=3, base_delay=0, max_delay=0, sleep=sleep)

    assert exc_info.value.operation == "allocate"
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.__cause__, OperationalError)


@pytest.mark.asyncio
async def test_non_transient_error_is_not_retried():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bug")

    with pytest.raises(ValueError):
        await retry_transient("op", broken, attempts=5, base_delay=0, max_delay=0)

    assert len(calls) == 1
