"""
Overdue Monitor

Background asyncio task that polls for occurrences whose window elapsed
while still scheduled, and reports each one once on the change feed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set
from uuid import UUID

from .change_feed_service import ChangeFeedService
from .schedule_query_service import ScheduleQueryService
from ..models.change_event import ChangeType, ScheduleChangeEvent
from ..models.occurrence import Occurrence

logger = logging.getLogger("careschedule.services.overdue_monitor")


class OverdueMonitor:
    """
    Background overdue detector.

    Every poll_interval seconds:
    1. Loads occurrences that are scheduled with end_time < now
    2. Publishes an OVERDUE event for those not reported before
    3. Forgets ids that are no longer overdue (started, closed or moved)
    """

    def __init__(
        self,
        query_service: ScheduleQueryService,
        change_feed: Optional[ChangeFeedService] = None,
        poll_interval: int = 300,
        enabled: bool = True,
    ):
        self.query_service = query_service
        self.change_feed = change_feed
        self.poll_interval = poll_interval
        self.enabled = enabled
        self._reported: Set[UUID] = set()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self):
        """Start the monitor background task"""
        if not self.enabled:
            logger.info("Overdue monitor is disabled (OVERDUE_MONITOR_ENABLED=false)")
            return

        if self._running:
            logger.warning("Overdue monitor is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Overdue monitor started (poll_interval={self.poll_interval}s)")

    async def stop(self):
        """Stop the monitor background task"""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Overdue monitor stopped")

    async def _poll_loop(self):
        """Main polling loop"""
        while self._running:
            try:
                await self.check_overdue()
            except Exception as e:
                logger.error(f"Overdue monitor poll error: {e}")

            try:
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break

    async def check_overdue(self) -> List[Occurrence]:
        """Report newly overdue occurrences; returns the ones reported this pass"""
        overdue = await self.query_service.overdue()
        current_ids = {o.id for o in overdue}
        self._reported &= current_ids

        fresh = [o for o in overdue if o.id not in self._reported]
        if not fresh:
            return []

        logger.info(f"Overdue monitor found {len(fresh)} newly overdue occurrence(s)")
        if self.change_feed:
            await self.change_feed.publish(
                ScheduleChangeEvent(change_type=ChangeType.OVERDUE, occurrences=fresh)
            )
        self._reported.update(o.id for o in fresh)
        return fresh

    @property
    def is_running(self) -> bool:
        return self._running
