"""
Injectable time and id sources.

Services take these as constructor arguments so tests can pin "now" and
booking ids instead of depending on store-generated values.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def local_today(clock: Clock, tz_name: str) -> date:
    """Calendar date of `clock()` in the given IANA timezone."""
    return clock().astimezone(ZoneInfo(tz_name)).date()
