"""
Expiration sweeper: moves waiting entries whose date has passed to expired.

Runs once a day from the scheduler. Works in pages of SWEEP_PAGE_SIZE, one
transaction per page, so a failure part-way keeps the pages already done.
Each write is "set expired if still waiting": an entry the allocator booked
between the query and the write is left booked and counted as skipped.
Expired and skipped entries drop out of the query, so every page makes progress.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.clock import Clock, local_today, utcnow
from app.core.config import Settings, get_settings
from app.core.errors import TransientStoreError
from app.core.logging import get_logger
from app.core.metrics import entries_expired, sweep_runs
from app.core.retry import retry_transient
from app.services import waitlist_repository

logger = get_logger(__name__)

MAX_PAGES_PER_RUN = 1000


@dataclass
class SweepResult:
    today: date
    scanned: int = 0
    expired: int = 0
    skipped: int = 0


class ExpirationSweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        settings: Optional[Settings] = None,
        clock: Clock = utcnow,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.clock = clock

    def today(self) -> date:
        return local_today(self.clock, self.settings.SWEEP_TIMEZONE)

    async def sweep(self, today: Optional[date] = None) -> SweepResult:
        today = today or self.today()
        with structlog.contextvars.bound_contextvars(job="waitlist_expiration_sweep", today=today.isoformat()):
            return await self._sweep(today)

    async def _sweep(self, today: date) -> SweepResult:
        result = SweepResult(today=today)

        for _ in range(MAX_PAGES_PER_RUN):
            scanned = await retry_transient(
                "sweep_page",
                lambda: self._sweep_page(today, result),
                attempts=self.settings.ALLOCATION_MAX_ATTEMPTS,
                base_delay=self.settings.ALLOCATION_BACKOFF_BASE_SECONDS,
                max_delay=self.settings.ALLOCATION_BACKOFF_MAX_SECONDS,
            )
            if scanned < self.settings.SWEEP_PAGE_SIZE:
                break
        else:
            logger.warning("waitlist_sweep_page_limit_reached", pages=MAX_PAGES_PER_RUN)

        entries_expired.inc(result.expired)
        logger.info(
            "waitlist_sweep_completed",
            scanned=result.scanned,
            expired=result.expired,
            skipped=result.skipped,
        )
        return result

    async def _sweep_page(self, today: date, result: SweepResult) -> int:
        expired = skipped = 0
        async with self.session_factory() as session:
            async with session.begin():
                entry_ids = await waitlist_repository.list_expirable(
                    session, today, self.settings.SWEEP_PAGE_SIZE
                )
                for entry_id in entry_ids:
                    if await waitlist_repository.mark_expired_if_waiting(session, entry_id):
                        expired += 1
                    else:
                        skipped += 1

        # Only count a page once its transaction committed
        result.scanned += len(entry_ids)
        result.expired += expired
        result.skipped += skipped
        return len(entry_ids)

    async def run_scheduled(self) -> Optional[SweepResult]:
        """Scheduler entry point; failures are logged, the next tick tries again."""
        try:
            result = await self.sweep()
        except TransientStoreError as e:
            sweep_runs.labels(status="failed").inc()
            logger.error("waitlist_sweep_failed", operation=e.operation, attempts=e.attempts)
            return None
        except Exception:
            sweep_runs.labels(status="failed").inc()
            logger.exception("waitlist_sweep_failed")
            return None
        sweep_runs.labels(status="completed").inc()
        return result
