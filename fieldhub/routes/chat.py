import uuid
from datetime import datetime, timedelta, timezone

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import require_action
from ..config import settings
from ..db import get_db
from ..errors import NotFound
from ..models.models import ChatMessage, ChatSession
from ..schemas.workspace import ChatMessageCreate, ChatMessageResponse, ChatSessionCreate, ChatSessionResponse
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def _own_session(db: Session, actor: Actor, session_id: uuid.UUID) -> ChatSession:
    row = db.query(ChatSession).filter(ChatSession.id == session_id, ChatSession.user_id == actor.id).one_or_none()
    if row is None:
        raise NotFound("Chat session not found")
    return row


def _recent_duplicate(db: Session, session_id: uuid.UUID, payload: ChatMessageCreate):
    """Same role and content posted to the session inside the dedupe window."""
    window = settings.chat_dedupe_window_seconds
    if window <= 0:
        return None
    last = (
        db.query(ChatMessage)
        .filter(ChatMessage.session_id == session_id)
        .order_by(ChatMessage.timestamp.desc())
        .first()
    )
    if last is None or last.role != payload.role or last.content != payload.content:
        return None
    stamp = last.timestamp if last.timestamp.tzinfo else last.timestamp.replace(tzinfo=timezone.utc)
    if datetime.now(timezone.utc) - stamp <= timedelta(seconds=window):
        return last
    return None


@router.get("/sessions")
def list_sessions(db: Session = Depends(get_db), actor: Actor = Depends(require_action(Action.USE_WORKSPACE))):
    rows = db.query(ChatSession).filter(ChatSession.user_id == actor.id).order_by(ChatSession.created_at.desc()).all()
    return {"data": [ChatSessionResponse.model_validate(r).model_dump(mode="json") for r in rows]}


@router.post("/sessions", response_model=ChatSessionResponse, status_code=status.HTTP_201_CREATED)
def create_session(
    payload: ChatSessionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.USE_WORKSPACE)),
):
    row = ChatSession(user_id=actor.id, summary=payload.summary)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/messages")
def list_messages(
    session_id: uuid.UUID,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.USE_WORKSPACE)),
):
    session = _own_session(db, actor, session_id)
    return {"data": [ChatMessageResponse.model_validate(m).model_dump(mode="json") for m in session.messages]}


@router.post("/messages", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
def post_message(
    payload: ChatMessageCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.USE_WORKSPACE)),
):
    session = _own_session(db, actor, payload.session_id)
    duplicate = _recent_duplicate(db, session.id, payload)
    if duplicate is not None:
        logger.info("chat_message_deduplicated", session_id=str(session.id), message_id=str(duplicate.id))
        return duplicate
    row = ChatMessage(
        session_id=session.id,
        role=payload.role,
        content=payload.content,
        retrieved_context=payload.retrieved_context,
        timestamp=datetime.now(timezone.utc),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
