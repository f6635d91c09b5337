import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator, model_validator


class CalendarEventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime

    @field_validator("title", mode="before")
    @classmethod
    def required_title(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("title is required")
        return v

    @model_validator(mode="after")
    def ordered_times(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class CalendarEventResponse(BaseModel):
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    created_by_user_id: Optional[str] = None

    class Config:
        from_attributes = True


class ChatSessionCreate(BaseModel):
    summary: Optional[str] = None


class ChatSessionResponse(BaseModel):
    id: uuid.UUID
    user_id: str
    summary: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ChatMessageCreate(BaseModel):
    session_id: uuid.UUID
    role: str = "user"
    content: str
    retrieved_context: Optional[Any] = None

    @field_validator("role", mode="before")
    @classmethod
    def known_role(cls, v):
        v = str(v or "user").strip().lower()
        if v not in ("user", "assistant"):
            raise ValueError("role must be 'user' or 'assistant'")
        return v

    @field_validator("content", mode="before")
    @classmethod
    def required_content(cls, v):
        v = str(v or "")
        if not v.strip():
            raise ValueError("content is required")
        return v


class ChatMessageResponse(BaseModel):
    id: uuid.UUID
    session_id: uuid.UUID
    role: str
    content: str
    retrieved_context: Optional[Any] = None
    timestamp: datetime

    class Config:
        from_attributes = True
