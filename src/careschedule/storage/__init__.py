"""
CareSchedule Storage Layer

PostgreSQL storage implementations for scheduling entities.
"""
from .base import BaseStorage
from .occurrence_storage import OccurrenceStorage, OccurrenceFilter
from .activity_storage import ActivityStorage

__all__ = [
    'BaseStorage',
    'OccurrenceStorage',
    'OccurrenceFilter',
    'ActivityStorage',
]
