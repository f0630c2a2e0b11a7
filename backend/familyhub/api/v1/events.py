"""Household calendar API routes: creation is quota gated per month."""

import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from familyhub.api.deps import (
    check_event_limit,
    get_current_active_user,
    get_db,
    get_household_reader,
    require_feature,
)
from familyhub.models.calendar_event import CalendarEvent
from familyhub.models.user import User
from familyhub.schemas.event import EventConflict, EventCreate, EventResponse

router = APIRouter(prefix="/api/v1/households/{household_id}/events", tags=["events"])


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@router.post(
    "",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a calendar event",
)
async def create_event(
    household_id: uuid.UUID,
    body: EventCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    _limit_check: None = Depends(check_event_limit),  # Plan gating
) -> EventResponse:
    """Add an event to the household calendar."""
    event = CalendarEvent(household_id=household_id, creator_id=current_user.id, **body.model_dump())
    db.add(event)
    await db.flush()
    await db.refresh(event)
    return EventResponse.model_validate(event)


@router.get("", response_model=list[EventResponse], summary="List calendar events")
async def list_events(
    household_id: uuid.UUID = Depends(get_household_reader),  # path id, once access is checked
    start_from: datetime | None = Query(None),
    start_to: datetime | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[EventResponse]:
    """Events of the household. Readable by members and by child / caregiver sessions."""
    filters = [CalendarEvent.household_id == household_id]
    if start_from is not None:
        filters.append(CalendarEvent.start_datetime >= _naive_utc(start_from))
    if start_to is not None:
        filters.append(CalendarEvent.start_datetime < _naive_utc(start_to))

    result = await db.execute(
        select(CalendarEvent).where(*filters).order_by(CalendarEvent.start_datetime).limit(limit)
    )
    return [EventResponse.model_validate(e) for e in result.scalars().all()]


def _ends_at(event: CalendarEvent) -> datetime:
    return event.end_datetime or event.start_datetime


@router.get(
    "/conflicts",
    response_model=list[EventConflict],
    summary="Find overlapping events",
    dependencies=[Depends(require_feature("advanced_calendar"))],
)
async def list_conflicts(
    household_id: uuid.UUID,
    start_from: datetime = Query(...),
    start_to: datetime = Query(...),
    db: AsyncSession = Depends(get_db),
) -> list[EventConflict]:
    """Pairs of events in the window whose times overlap. Family Pro or trial only."""
    result = await db.execute(
        select(CalendarEvent)
        .where(
            CalendarEvent.household_id == household_id,
            CalendarEvent.start_datetime >= _naive_utc(start_from),
            CalendarEvent.start_datetime < _naive_utc(start_to),
        )
        .order_by(CalendarEvent.start_datetime)
        .limit(500)
    )
    events = list(result.scalars().all())

    conflicts = []
    for i, first in enumerate(events):
        for second in events[i + 1 :]:
            # Sorted by start, so nothing later can overlap ``first`` either
            if second.start_datetime >= _ends_at(first) and second.start_datetime != first.start_datetime:
                break
            conflicts.append(
                EventConflict(
                    first=EventResponse.model_validate(first),
                    second=EventResponse.model_validate(second),
                )
            )
    return conflicts
