"""
Error taxonomy for the allocator and sweeper.

Slot contention is not represented here: losing the slot is an ordinary
allocation outcome, not an exception that escapes the allocator.
"""

import asyncio

from sqlalchemy import exc as sa_exc


class WaitlistEngineError(Exception):
    """Base class for engine errors."""


class TransientStoreError(WaitlistEngineError):
    """A store operation kept failing after the retry budget was spent."""

    def __init__(self, operation: str, attempts: int):
        super().__init__(f"{operation} failed after {attempts} attempts")
        self.operation = operation
        self.attempts = attempts


class AllocationAborted(WaitlistEngineError):
    """Raised inside the allocation transaction to roll it back without side effects."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class PartialWriteError(WaitlistEngineError):
    """
    The booking insert and the waitlist update did not apply together.
    Treated as fatal: the surrounding transaction must be rolled back.
    """


def is_transient_store_error(exc: BaseException) -> bool:
    """Timeouts and lost connections are worth retrying; constraint violations are not."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    if isinstance(exc, sa_exc.TimeoutError):
        return True
    if isinstance(exc, sa_exc.OperationalError):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return False
