"""
CareSchedule Data Models

Domain models for the care activity scheduling engine.
"""
from .occurrence import (
    Occurrence,
    OccurrenceStatus,
    Priority,
    RecurrenceFrequency,
    RecurrencePattern,
    TimeWindow,
    ACTIVE_STATUSES,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
)
from .activity import ActivityTemplate
from .change_event import ChangeType, ScheduleChangeEvent

__all__ = [
    'Occurrence',
    'OccurrenceStatus',
    'Priority',
    'RecurrenceFrequency',
    'RecurrencePattern',
    'TimeWindow',
    'ACTIVE_STATUSES',
    'OPEN_STATUSES',
    'TERMINAL_STATUSES',
    'ActivityTemplate',
    'ChangeType',
    'ScheduleChangeEvent',
]
