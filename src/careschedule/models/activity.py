"""
Activity Template Model

Read-only view of an activity template owned by the case-management app.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional
from uuid import UUID, uuid4


@dataclass
class ActivityTemplate:
    """Activity template as seen by the scheduler"""
    id: UUID = field(default_factory=uuid4)
    goal_id: Optional[UUID] = None
    title: str = ""
    frequency: Optional[str] = None                  # 'daily', 'weekly', 'monthly', 'as_needed'
    estimated_duration: Optional[int] = None         # minutes
    is_active: bool = True

    @property
    def default_duration(self) -> Optional[timedelta]:
        if not self.estimated_duration or self.estimated_duration <= 0:
            return None
        return timedelta(minutes=self.estimated_duration)
