"""
Periodic sync jobs.

- mainboard: live, upcoming, closed batches every mainboard_interval_seconds
- sme: same batches every sme_interval_seconds, only inside the UTC market-hours window
- backfill: details_ipo rows for newly cross-referenced IPOs
Each run first wakes the database; if it stays unreachable the run is skipped.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional

from .core.models import Category, StatusFilter

LOGGER = logging.getLogger(__name__)

BATCH_ORDER = (StatusFilter.LIVE, StatusFilter.UPCOMING, StatusFilter.CLOSED)


async def wake_db_with_retry(db, name: str = "IPO", attempts: int = 3, delay: float = 5.0) -> bool:
    for i in range(1, attempts + 1):
        try:
            if await db.ping():
                LOGGER.debug("%s DB is awake", name)
                return True
        except Exception as exc:
            LOGGER.warning("%s DB wake check failed: %s", name, exc)
        if i < attempts:
            LOGGER.info("Retry #%d for waking %s DB in %ss...", i, name, delay)
            await asyncio.sleep(delay)
    return False


def within_market_hours(now: datetime, window) -> bool:
    start, end = window
    return start <= now.astimezone(timezone.utc).hour <= end


class SyncScheduler:
    def __init__(self, orchestrator, db, settings, clock: Callable[[], datetime] = None) -> None:
        self.orchestrator = orchestrator
        self.db = db
        self.settings = settings
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._tasks: List[asyncio.Task] = []

    async def _db_ready(self) -> bool:
        return await wake_db_with_retry(
            self.db,
            attempts=self.settings.db_wake_attempts,
            delay=self.settings.db_wake_delay_seconds,
        )

    async def run_category(self, category: Category) -> Optional[int]:
        """One scheduled pass over every status for a category; None when skipped."""
        if category is Category.SME and not within_market_hours(self.clock(), self.settings.sme_market_hours_utc):
            LOGGER.info("Skipping SME sync (outside market hours).")
            return None
        if not await self._db_ready():
            LOGGER.error("Skipping %s sync because DB is unavailable.", category.value)
            return None
        total = 0
        for status in BATCH_ORDER:
            result = await self.orchestrator.sync_batch(category.value, status.value)
            total += result.changed_count
        LOGGER.info("%s IPO sync completed, %d changed.", category.value, total)
        return total

    async def run_backfill(self) -> Optional[int]:
        if not await self._db_ready():
            LOGGER.error("Skipping backfilling because DB is unavailable.")
            return None
        inserted = await self.db.backfill_details()
        LOGGER.info("Backfilling completed, %d details rows inserted.", inserted)
        return inserted

    async def _loop(self, name: str, interval: float, job: Callable[[], Awaitable[object]]) -> None:
        while True:
            try:
                await job()
            except asyncio.CancelledError:
                raise
            except Exception:
                # keep the schedule alive; the next tick retries from scratch
                LOGGER.exception("%s job failed", name)
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self._tasks:
            return
        s = self.settings
        self._tasks = [
            asyncio.create_task(self._loop(
                "mainboard", s.mainboard_interval_seconds, lambda: self.run_category(Category.MAINBOARD))),
            asyncio.create_task(self._loop(
                "sme", s.sme_interval_seconds, lambda: self.run_category(Category.SME))),
            asyncio.create_task(self._loop("backfill", s.backfill_interval_seconds, self.run_backfill)),
        ]

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
