"""
Activity Storage

Read-only access to activity templates. The activities table belongs to the
case-management app; the scheduler never writes to it.
"""
import logging
from typing import Optional
from uuid import UUID

from .base import BaseStorage
from ..models.activity import ActivityTemplate

logger = logging.getLogger("careschedule.storage.activity")


class ActivityStorage(BaseStorage):
    """Reader for ActivityTemplate records"""

    async def get_by_id(self, activity_id: UUID) -> Optional[ActivityTemplate]:
        """Get activity template by ID"""
        query = """
            SELECT id, goal_id, title, frequency, estimated_duration, is_active
            FROM activities WHERE id = $1
        """
        row = await self.fetchrow(query, activity_id)
        return self._row_to_activity(row) if row else None

    def _row_to_activity(self, row) -> ActivityTemplate:
        """Convert database row to ActivityTemplate"""
        return ActivityTemplate(
            id=row["id"],
            goal_id=row["goal_id"],
            title=row["title"],
            frequency=row["frequency"],
            estimated_duration=row["estimated_duration"],
            is_active=row["is_active"],
        )
