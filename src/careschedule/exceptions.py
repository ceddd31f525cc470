"""
Scheduling Errors

Business-rule failures raised by the scheduling services. None of these are
transient, so nothing in the engine retries them.
"""
from typing import Optional
from uuid import UUID


class SchedulingError(Exception):
    """Base class for scheduling errors."""


class InvalidTimeRange(SchedulingError):
    """Raised when an occurrence window does not end after it starts."""


class InvalidPattern(SchedulingError):
    """Raised when a recurrence pattern is malformed or cannot produce a valid series."""


class SchedulingConflict(SchedulingError):
    """Raised when a window overlaps an active occurrence of the same assignee."""

    def __init__(self, message: str, conflicting_occurrence_id: Optional[UUID] = None):
        super().__init__(message)
        self.conflicting_occurrence_id = conflicting_occurrence_id


class InvalidStateTransition(SchedulingError):
    """Raised on a mutation the occurrence's current status does not allow."""


class NotFound(SchedulingError):
    """Raised when a referenced occurrence does not exist."""


# Mapping of scheduling errors to HTTP status codes
ERROR_STATUS_CODES = {
    InvalidTimeRange: 400,
    InvalidPattern: 400,
    SchedulingConflict: 409,
    InvalidStateTransition: 409,
    NotFound: 404,
}
