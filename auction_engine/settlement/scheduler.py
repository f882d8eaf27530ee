"""APScheduler setup for periodic settlement passes."""

from __future__ import annotations

import logging
from datetime import timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .job import SettlementJob

logger = logging.getLogger(__name__)


class SettlementScheduler:
    def __init__(self, job: SettlementJob, interval_seconds: int) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._job = job
        self._interval_seconds = interval_seconds
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

    async def tick(self) -> None:
        try:
            result = await self._job.run()
        except Exception as exc:
            logger.error("scheduled settlement failed: %s", exc, exc_info=True)
            return
        if result.transitions:
            logger.info(
                "scheduled settlement closed %d auction(s): %s",
                len(result.transitions),
                [item_id for item_id, _ in result.transitions],
            )

    def start(self) -> None:
        """Must be called from inside the running event loop."""
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(seconds=self._interval_seconds, timezone=timezone.utc),
            id="auction_settlement",
            name="Auction settlement",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("settlement scheduler started (every %ss)", self._interval_seconds)

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    @property
    def running(self) -> bool:
        return self._scheduler.running
