import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ..models.enums import UserRole


class DepartmentCreate(BaseModel):
    name: str

    @field_validator("name", mode="before")
    @classmethod
    def required_name(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v


class DepartmentResponse(BaseModel):
    id: uuid.UUID
    name: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserBase(BaseModel):
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    id_card_no: Optional[str] = None
    dob: Optional[date] = None

    @field_validator("full_name", "phone_number", "id_card_no", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class UserCreate(UserBase):
    # Identity-provider subject of an account created there first
    id: str
    email: str
    role: UserRole = UserRole.NOT_ASSIGN
    department_id: Optional[uuid.UUID] = None

    @field_validator("id", mode="before")
    @classmethod
    def required_id(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("id is required")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = str(v or "").strip().lower()
        if "@" not in v:
            raise ValueError("a valid email is required")
        return v


class UserUpdate(UserBase):
    email: Optional[str] = None
    role: Optional[UserRole] = None
    department_id: Optional[uuid.UUID] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if v is None:
            return None
        v = str(v).strip().lower()
        if "@" not in v:
            raise ValueError("a valid email is required")
        return v


class UserResponse(UserBase):
    id: str
    email: str
    role: UserRole
    department_id: Optional[uuid.UUID] = None
    department: Optional[DepartmentResponse] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
