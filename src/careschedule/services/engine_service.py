"""
Engine Service

Main composite service that manages all storages and services.
Singleton pattern - one instance per process.
"""
import logging
from typing import Optional

from ..config import Config
from ..storage.occurrence_storage import OccurrenceStorage
from ..storage.activity_storage import ActivityStorage
from ..notifications.webhook_publisher import WebhookPublisher
from .change_feed_service import ChangeFeedService
from .schedule_service import ScheduleService
from .schedule_query_service import ScheduleQueryService
from .overdue_monitor import OverdueMonitor

logger = logging.getLogger("careschedule.services.engine")

# Singleton instance
_engine_service: Optional["EngineService"] = None


class EngineService:
    """
    Composite engine service.

    Manages:
    - Storage connections (PostgreSQL)
    - Scheduling services and the change feed
    - The overdue monitor background task
    - Graceful shutdown
    """

    def __init__(
        self,
        occurrence_storage: Optional[OccurrenceStorage] = None,
        activity_storage: Optional[ActivityStorage] = None,
        change_feed: Optional[ChangeFeedService] = None,
    ):
        """Initialize engine service; storages can be injected"""
        self.postgres_dsn = Config.get_postgres_dsn()

        # Initialize storages
        self.occurrence_storage = occurrence_storage or OccurrenceStorage(self.postgres_dsn)
        self.activity_storage = activity_storage or ActivityStorage(self.postgres_dsn)

        # Initialize change feed
        self.change_feed = change_feed or ChangeFeedService()
        if change_feed is None and Config.SCHEDULE_WEBHOOK_URL:
            self.change_feed.register_publisher(
                "webhook",
                WebhookPublisher(Config.SCHEDULE_WEBHOOK_URL, Config.SCHEDULE_WEBHOOK_SECRET),
            )
        elif change_feed is None:
            logger.info("Webhook publisher disabled (no SCHEDULE_WEBHOOK_URL)")

        # Initialize scheduling services
        self.schedule_service = ScheduleService(
            storage=self.occurrence_storage,
            activity_storage=self.activity_storage,
            change_feed=self.change_feed,
            timezone_name=Config.SCHEDULE_TIMEZONE,
            max_occurrences=Config.RECURRENCE_MAX_OCCURRENCES,
            horizon_days=Config.RECURRENCE_HORIZON_DAYS,
        )
        self.query_service = ScheduleQueryService(
            storage=self.occurrence_storage,
            timezone_name=Config.SCHEDULE_TIMEZONE,
            upcoming_days=Config.UPCOMING_DEFAULT_DAYS,
        )

        # Initialize overdue monitor (started in initialize(), stopped in close())
        self.overdue_monitor = OverdueMonitor(
            query_service=self.query_service,
            change_feed=self.change_feed,
            poll_interval=Config.OVERDUE_POLL_INTERVAL,
            enabled=Config.OVERDUE_MONITOR_ENABLED,
        )

        self._initialized = False
        logger.info("EngineService created")

    async def initialize(self):
        """Initialize all storages"""
        if self._initialized:
            logger.info("EngineService already initialized")
            return

        logger.info("Initializing EngineService...")

        await self.occurrence_storage.init()
        await self.activity_storage.init()

        # Start background monitor
        await self.overdue_monitor.start()

        self._initialized = True
        logger.info("EngineService initialized successfully")

    async def close(self):
        """Close all connections"""
        logger.info("Closing EngineService...")

        await self.overdue_monitor.stop()
        await self.occurrence_storage.close()
        await self.activity_storage.close()
        await self.change_feed.close()

        self._initialized = False
        logger.info("EngineService closed")

    @property
    def is_initialized(self) -> bool:
        """Check if service is initialized"""
        return self._initialized


def get_engine_service() -> EngineService:
    """Get or create engine service singleton"""
    global _engine_service
    if _engine_service is None:
        _engine_service = EngineService()
    return _engine_service


def set_engine_service(service: Optional[EngineService]) -> None:
    """Replace the process-wide engine (used to wire custom storages)"""
    global _engine_service
    _engine_service = service


async def init_engine_service() -> EngineService:
    """Initialize and return engine service"""
    service = get_engine_service()
    await service.initialize()
    return service
