import uuid
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator


class ProjectItemIn(BaseModel):
    model_name: str
    quantity: int = 1
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    serial_numbers: List[str] = []

    @field_validator("quantity")
    @classmethod
    def positive_quantity(cls, v):
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v

    @field_validator("serial_numbers", mode="before")
    @classmethod
    def drop_blank_serials(cls, v):
        if v is None:
            return []
        return [str(s).strip() for s in v if s and str(s).strip()]


class ProjectBase(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    contact_person: Optional[str] = None
    contact_position: Optional[str] = None
    input_contract_no: Optional[str] = None
    input_contract_date: Optional[date] = None
    output_contract_no: Optional[str] = None
    output_contract_date: Optional[date] = None


class ProjectCreate(ProjectBase):
    customer_id: uuid.UUID
    name: str
    items: List[ProjectItemIn] = []
    personnel_ids: List[str] = []


class ProjectUpdate(ProjectBase):
    # None leaves the collection untouched; a list replaces it
    items: Optional[List[ProjectItemIn]] = None
    personnel_ids: Optional[List[str]] = None


class ProjectSerialResponse(BaseModel):
    id: uuid.UUID
    serial_number: str

    class Config:
        from_attributes = True


class ProjectItemResponse(BaseModel):
    id: uuid.UUID
    model_name: str
    quantity: int
    warranty_start_date: Optional[date] = None
    warranty_end_date: Optional[date] = None
    serials: List[ProjectSerialResponse] = []

    class Config:
        from_attributes = True


class ProjectPersonnelResponse(BaseModel):
    user_id: str

    class Config:
        from_attributes = True


class ProjectResponse(ProjectBase):
    id: uuid.UUID
    customer_id: uuid.UUID
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[ProjectItemResponse] = []
    personnel: List[ProjectPersonnelResponse] = []

    class Config:
        from_attributes = True
