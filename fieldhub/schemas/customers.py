import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class CustomerBase(BaseModel):
    company_name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    customer_type: Optional[str] = None

    @field_validator("company_name", mode="before")
    @classmethod
    def required_name(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("company_name is required")
        return v

    @field_validator("contact_person", "phone", "address", "customer_type", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class CustomerCreate(CustomerBase):
    pass


class CustomerResponse(CustomerBase):
    id: uuid.UUID
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ContactBase(BaseModel):
    name: str
    title: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_primary: bool = False

    @field_validator("name", mode="before")
    @classmethod
    def required_name(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("name is required")
        return v

    @field_validator("title", "phone", "email", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class ContactCreate(ContactBase):
    customer_id: uuid.UUID


class ContactUpdate(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_primary: Optional[bool] = None


class ContactResponse(ContactBase):
    id: uuid.UUID
    customer_id: uuid.UUID

    class Config:
        from_attributes = True
