from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import require_action
from ..db import get_db
from ..models.models import CalendarEvent
from ..schemas.workspace import CalendarEventCreate, CalendarEventResponse
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/calendar-events", tags=["calendar"])


@router.get("")
def list_events(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.USE_WORKSPACE)),
):
    query = db.query(CalendarEvent)
    # Overlap with [start, end]
    if start is not None:
        query = query.filter(CalendarEvent.end_time >= start)
    if end is not None:
        query = query.filter(CalendarEvent.start_time <= end)
    rows = query.order_by(CalendarEvent.start_time.asc()).all()
    return {"data": [CalendarEventResponse.model_validate(r).model_dump(mode="json") for r in rows]}


@router.post("", response_model=CalendarEventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: CalendarEventCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.USE_WORKSPACE)),
):
    row = CalendarEvent(**payload.model_dump(), created_by_user_id=actor.id)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("calendar_event_created", event_id=str(row.id), actor_id=actor.id)
    return row
