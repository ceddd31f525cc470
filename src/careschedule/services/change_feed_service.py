"""
Change Feed Service

Fans committed schedule changes out to every registered publisher.
Delivery happens after commit and never fails the originating operation.
"""
import logging
from typing import Dict, Optional

from ..models.change_event import ScheduleChangeEvent
from ..notifications.base_publisher import BasePublisher

logger = logging.getLogger("careschedule.services.change_feed")


class ChangeFeedService:
    """
    Change event fan-out.

    For each event:
    1. Hands it to every registered publisher
    2. Logs failed deliveries
    3. Reports per-publisher success
    """

    def __init__(self, publishers: Optional[Dict[str, BasePublisher]] = None):
        # name -> publisher instance
        self._publishers: Dict[str, BasePublisher] = publishers or {}

    def register_publisher(self, name: str, publisher: BasePublisher):
        """Register a publisher under a name"""
        self._publishers[name] = publisher
        logger.info(f"Registered change publisher: {name}")

    @property
    def publisher_names(self):
        return list(self._publishers)

    async def publish(self, event: ScheduleChangeEvent) -> Dict[str, bool]:
        """
        Deliver an event to all publishers.

        Returns dict of {publisher_name: success_bool}.
        """
        results: Dict[str, bool] = {}
        for name, publisher in self._publishers.items():
            try:
                result = await publisher.publish(event)
            except Exception as e:
                logger.error(f"Publisher '{name}' raised for event {event.id}: {e}")
                results[name] = False
                continue

            if not result.success:
                logger.warning(
                    f"Publisher '{name}' failed to deliver {event.change_type.value} "
                    f"event {event.id}: {result.error}"
                )
            results[name] = result.success
        return results

    async def close(self):
        """Cleanup publisher resources"""
        for publisher in self._publishers.values():
            await publisher.close()
