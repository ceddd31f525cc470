"""
Schedule Change Event Model

A committed change to the schedule, handed to the change feed after commit.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from .occurrence import Occurrence


class ChangeType(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    RESCHEDULED = "rescheduled"
    CANCELLED = "cancelled"
    STARTED = "started"
    COMPLETED = "completed"
    OVERDUE = "overdue"


@dataclass
class ScheduleChangeEvent:
    """
    Change event delivered to publishers.

    occurrences holds every record touched by the change; for a reschedule
    that is the retired occurrence followed by its successor.
    """
    change_type: ChangeType = ChangeType.UPDATED
    occurrences: List[Occurrence] = field(default_factory=list)
    actor_ref: Optional[UUID] = None
    reason: Optional[str] = None
    id: UUID = field(default_factory=uuid4)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def occurrence_ids(self) -> List[UUID]:
        return [o.id for o in self.occurrences]

    def to_dict(self) -> dict:
        """Convert to dictionary for delivery"""
        return {
            "id": str(self.id),
            "change_type": self.change_type.value,
            "occurrence_ids": [str(i) for i in self.occurrence_ids],
            "occurrences": [o.to_dict() for o in self.occurrences],
            "actor_ref": str(self.actor_ref) if self.actor_ref else None,
            "reason": self.reason,
            "occurred_at": self.occurred_at.isoformat(),
        }
