"""
Schedule Routes

Calendar and dashboard views over the schedule.
"""
from datetime import date
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, HTTPException, Depends, Query

from ..services.engine_service import get_engine_service
from .auth import get_current_user
from .occurrences import OccurrenceResponse

router = APIRouter(prefix="/schedule", tags=["schedule"])


def _assignee(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid assignee_ref")


@router.get("/date/{day}", response_model=List[OccurrenceResponse])
async def get_schedule_for_date(
    day: str,
    assignee_ref: Optional[str] = None,
    include_cancelled: bool = False,
    current_user: dict = Depends(get_current_user),
):
    """Occurrences starting on a calendar day, optionally for one assignee"""
    try:
        parsed = date.fromisoformat(day)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format (use YYYY-MM-DD)")

    engine = get_engine_service()
    occurrences = await engine.query_service.occurrences_on_date(
        parsed, assignee_ref=_assignee(assignee_ref), include_cancelled=include_cancelled
    )
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("/today", response_model=List[OccurrenceResponse])
async def get_today(
    assignee_ref: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    """Today's occurrences in the schedule time zone"""
    engine = get_engine_service()
    occurrences = await engine.query_service.todays_occurrences(assignee_ref=_assignee(assignee_ref))
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("/upcoming", response_model=List[OccurrenceResponse])
async def get_upcoming(
    days: Optional[int] = Query(None, ge=1, le=366),
    assignee_ref: Optional[str] = None,
    current_user: dict = Depends(get_current_user),
):
    """Live occurrences starting within the next N days"""
    engine = get_engine_service()
    occurrences = await engine.query_service.upcoming(days=days, assignee_ref=_assignee(assignee_ref))
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("/overdue", response_model=List[OccurrenceResponse])
async def get_overdue(current_user: dict = Depends(get_current_user)):
    """Scheduled occurrences whose window has passed"""
    engine = get_engine_service()
    occurrences = await engine.query_service.overdue()
    return [OccurrenceResponse(**o.to_dict()) for o in occurrences]


@router.get("/analytics")
async def get_analytics(current_user: dict = Depends(get_current_user)):
    """Dashboard counters"""
    engine = get_engine_service()
    analytics = await engine.query_service.analytics()
    return analytics.to_dict()
