"""
CareSchedule Services

Business logic services for activity scheduling.
"""
from .engine_service import EngineService
from .schedule_service import ScheduleService
from .schedule_query_service import ScheduleQueryService, ScheduleAnalytics
from .conflict_checker import ConflictChecker
from .change_feed_service import ChangeFeedService
from .overdue_monitor import OverdueMonitor

__all__ = [
    'EngineService',
    'ScheduleService',
    'ScheduleQueryService',
    'ScheduleAnalytics',
    'ConflictChecker',
    'ChangeFeedService',
    'OverdueMonitor',
]
