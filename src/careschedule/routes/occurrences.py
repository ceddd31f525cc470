"""
Occurrence Routes

Endpoints for creating and managing scheduled activity occurrences.
"""
import logging
from datetime import date, datetime
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel

from ..exceptions import ERROR_STATUS_CODES, SchedulingConflict, SchedulingError
from ..models.occurrence import OccurrenceStatus, Priority, RecurrencePattern
from ..services.engine_service import get_engine_service
from ..storage.occurrence_storage import OccurrenceFilter
from .auth import get_current_user

logger = logging.getLogger("careschedule.routes.occurrences")
router = APIRouter(prefix="/occurrences", tags=["occurrences"])


# ============================================
# Request/Response Models
# ============================================

class RecurrencePatternModel(BaseModel):
    """Recurrence rule; days_of_week uses 0=Sunday .. 6=Saturday"""
    frequency: str                              # "daily", "weekly" or "monthly"
    interval: int = 1
    end_date: Optional[str] = None              # ISO date, inclusive
    days_of_week: Optional[List[int]] = None


class CreateOccurrenceRequest(BaseModel):
    """Create occurrence request"""
    activity_ref: str
    goal_ref: str
    client_ref: str
    assignee_ref: str
    start_time: str                             # ISO datetime
    end_time: Optional[str] = None              # ISO datetime; defaults from activity duration
    scheduled_date: Optional[str] = None        # ISO date
    priority: str = "medium"
    notes: Optional[str] = None
    recurrence_pattern: Optional[RecurrencePatternModel] = None


class UpdateOccurrenceRequest(BaseModel):
    """Partial occurrence update"""
    scheduled_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    assignee_ref: Optional[str] = None
    priority: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[str] = None
    completion_ref: Optional[str] = None


class RescheduleRequest(BaseModel):
    """Reschedule request"""
    new_start_time: str
    new_end_time: str
    new_scheduled_date: Optional[str] = None
    new_assignee_ref: Optional[str] = None
    reason: Optional[str] = None


class CancelRequest(BaseModel):
    """Cancel request"""
    reason: Optional[str] = None


class CompleteRequest(BaseModel):
    """Completion request from the completion recorder"""
    completion_ref: str


class OccurrenceResponse(BaseModel):
    """Occurrence response"""
    id: str
    activity_ref: str
    goal_ref: str
    client_ref: str
    assignee_ref: str
    created_by_ref: str
    scheduled_date: Optional[str]
    start_time: str
    end_time: str
    status: str
    priority: str
    notes: Optional[str]
    completion_ref: Optional[str]
    rescheduled_from_ref: Optional[str]
    recurrence_pattern: Optional[dict]
    recurrence_origin_ref: Optional[str]
    created_at: str
    updated_at: str


# ============================================
# Helpers
# ============================================

def _uuid(value: Optional[str], name: str) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")


def _datetime(value: Optional[str], name: str) -> Optional[datetime]:
    if value is None:
        return None
    # fromisoformat only accepts the Z suffix from Python 3.11
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format (use ISO)")


def _date(value: Optional[str], name: str) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {name} format (use YYYY-MM-DD)")


def _enum(enum_cls, value: Optional[str], name: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise HTTPException(status_code=400, detail=f"Invalid {name} (expected one of: {allowed})")


def _pattern(model: Optional[RecurrencePatternModel]) -> Optional[RecurrencePattern]:
    if model is None:
        return None
    return RecurrencePattern.from_dict({
        "frequency": model.frequency,
        "interval": model.interval,
        "end_date": _date(model.end_date, "recurrence end_date"),
        "days_of_week": model.days_of_week,
    })


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Translate a scheduling error into an HTTP error response"""
    status_code = ERROR_STATUS_CODES.get(type(error), 400)
    if isinstance(error, SchedulingConflict):
        detail = {
            "message": str(error),
            "conflicting_occurrence_id": (
                str(error.conflicting_occurrence_id) if error.conflicting_occurrence_id else None
            ),
        }
        return HTTPException(status_code=status_code, detail=detail)
    return HTTPException(status_code=status_code, detail=str(error))


# ============================================
# Routes
# ============================================

@router.post("", response_model=List[OccurrenceResponse], status_code=201)
async def create_occurrence(
    request: CreateOccurrenceRequest,
    current_user: dict = Depends(get_current_user),
):
    """Create an occurrence, or a recurring series when a pattern is given"""
    engine = get_engine_service()

    try:
        result = await engine.schedule_service.create_occurrence(
            activity_ref=_uuid(request.activity_ref, "activity_ref"),
            goal_ref=_uuid(request.goal_ref, "goal_ref"),
            client_ref=_uuid(request.client_ref, "client_ref"),
            assignee_ref=_uuid(request.assignee_ref, "assignee_ref"),
            created_by_ref=current_user["user_id"],
            start_time=_datetime(request.start_time, "start_time"),
            end_time=_datetime(request.end_time, "end_time"),
            scheduled_date=_date(request.scheduled_date, "scheduled_date"),
            priority=_enum(Priority, request.priority, "priority"),
            notes=request.notes,
            recurrence_pattern=_pattern(request.recurrence_pattern),
        )
    except SchedulingError as e:
        logger.warning(f"Create rejected: {e}")
        raise to_http_exception(e)

    occurrences = result if isinstance(result, list) else [result]
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("", response_model=List[OccurrenceResponse])
async def list_occurrences(
    activity_ref: Optional[str] = None,
    goal_ref: Optional[str] = None,
    client_ref: Optional[str] = None,
    assignee_ref: Optional[str] = None,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    scheduled_date: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    include_cancelled: bool = False,
    current_user: dict = Depends(get_current_user),
):
    """List occurrences; cancelled ones only with include_cancelled or status=cancelled"""
    engine = get_engine_service()
    filters = OccurrenceFilter(
        activity_ref=_uuid(activity_ref, "activity_ref"),
        goal_ref=_uuid(goal_ref, "goal_ref"),
        client_ref=_uuid(client_ref, "client_ref"),
        assignee_ref=_uuid(assignee_ref, "assignee_ref"),
        status=_enum(OccurrenceStatus, status, "status"),
        priority=_enum(Priority, priority, "priority"),
        scheduled_date=_date(scheduled_date, "scheduled_date"),
        date_from=_date(date_from, "date_from"),
        date_to=_date(date_to, "date_to"),
        include_cancelled=include_cancelled,
    )
    occurrences = await engine.query_service.list_occurrences(filters)
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("/{occurrence_id}", response_model=OccurrenceResponse)
async def get_occurrence(
    occurrence_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Get an occurrence by ID"""
    engine = get_engine_service()
    try:
        occurrence = await engine.schedule_service.get_occurrence(_uuid(occurrence_id, "occurrence ID"))
    except SchedulingError as e:
        raise to_http_exception(e)
    return OccurrenceResponse(**occurrence.to_dict())


@router.get("/{occurrence_id}/history", response_model=List[OccurrenceResponse])
async def get_reschedule_history(
    occurrence_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Reschedule chain of an occurrence, oldest first"""
    engine = get_engine_service()
    try:
        chain = await engine.schedule_service.get_reschedule_chain(_uuid(occurrence_id, "occurrence ID"))
    except SchedulingError as e:
        raise to_http_exception(e)
    return [OccurrenceResponse(**o.to_dict()) for o in chain]


@router.patch("/{occurrence_id}", response_model=OccurrenceResponse)
async def update_occurrence(
    occurrence_id: str,
    request: UpdateOccurrenceRequest,
    current_user: dict = Depends(get_current_user),
):
    """Update fields of an occurrence"""
    engine = get_engine_service()

    try:
        updated = await engine.schedule_service.update_occurrence(
            occurrence_id=_uuid(occurrence_id, "occurrence ID"),
            scheduled_date=_date(request.scheduled_date, "scheduled_date"),
            start_time=_datetime(request.start_time, "start_time"),
            end_time=_datetime(request.end_time, "end_time"),
            assignee_ref=_uuid(request.assignee_ref, "assignee_ref"),
            priority=_enum(Priority, request.priority, "priority"),
            notes=request.notes,
            status=_enum(OccurrenceStatus, request.status, "status"),
            completion_ref=_uuid(request.completion_ref, "completion_ref"),
            actor_ref=current_user["user_id"],
        )
    except SchedulingError as e:
        logger.warning(f"Update of {occurrence_id} rejected: {e}")
        raise to_http_exception(e)
    return OccurrenceResponse(**updated.to_dict())


@router.post("/{occurrence_id}/reschedule", response_model=OccurrenceResponse, status_code=201)
async def reschedule_occurrence(
    occurrence_id: str,
    request: RescheduleRequest,
    current_user: dict = Depends(get_current_user),
):
    """Move an occurrence; returns the new occurrence that replaces it"""
    engine = get_engine_service()

    try:
        successor = await engine.schedule_service.reschedule_occurrence(
            occurrence_id=_uuid(occurrence_id, "occurrence ID"),
            new_start_time=_datetime(request.new_start_time, "new_start_time"),
            new_end_time=_datetime(request.new_end_time, "new_end_time"),
            new_scheduled_date=_date(request.new_scheduled_date, "new_scheduled_date"),
            new_assignee_ref=_uuid(request.new_assignee_ref, "new_assignee_ref"),
            reason=request.reason,
            actor_ref=current_user["user_id"],
        )
    except SchedulingError as e:
        logger.warning(f"Reschedule of {occurrence_id} rejected: {e}")
        raise to_http_exception(e)
    return OccurrenceResponse(**successor.to_dict())


@router.post("/{occurrence_id}/cancel", response_model=OccurrenceResponse)
async def cancel_occurrence(
    occurrence_id: str,
    request: Optional[CancelRequest] = None,
    current_user: dict = Depends(get_current_user),
):
    """Cancel an occurrence (the record is kept)"""
    engine = get_engine_service()

    try:
        cancelled = await engine.schedule_service.cancel_occurrence(
            occurrence_id=_uuid(occurrence_id, "occurrence ID"),
            reason=request.reason if request else None,
            actor_ref=current_user["user_id"],
        )
    except SchedulingError as e:
        logger.warning(f"Cancel of {occurrence_id} rejected: {e}")
        raise to_http_exception(e)
    return OccurrenceResponse(**cancelled.to_dict())


@router.post("/{occurrence_id}/start", response_model=OccurrenceResponse)
async def start_occurrence(
    occurrence_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Mark an occurrence as in progress"""
    engine = get_engine_service()

    try:
        started = await engine.schedule_service.start_occurrence(
            occurrence_id=_uuid(occurrence_id, "occurrence ID"),
            actor_ref=current_user["user_id"],
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return OccurrenceResponse(**started.to_dict())


@router.post("/{occurrence_id}/complete", response_model=OccurrenceResponse)
async def complete_occurrence(
    occurrence_id: str,
    request: CompleteRequest,
    current_user: dict = Depends(get_current_user),
):
    """Mark an occurrence completed, linking the completion record"""
    engine = get_engine_service()

    try:
        completed = await engine.schedule_service.complete_occurrence(
            occurrence_id=_uuid(occurrence_id, "occurrence ID"),
            completion_ref=_uuid(request.completion_ref, "completion_ref"),
            actor_ref=current_user["user_id"],
        )
    except SchedulingError as e:
        raise to_http_exception(e)
    return OccurrenceResponse(**completed.to_dict())
