import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, field_validator, model_validator

from ..models.enums import JobStatus, JobType


class UserSummary(BaseModel):
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    department_id: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True


class JobCustomer(BaseModel):
    id: uuid.UUID
    company_name: str
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    customer_type: Optional[str] = None

    class Config:
        from_attributes = True


class MaterialView(BaseModel):
    id: uuid.UUID
    item_code: str
    name: str
    type: str
    unit: Optional[str] = None
    price: Optional[float] = None

    class Config:
        from_attributes = True


class LineItemView(BaseModel):
    id: uuid.UUID
    material_id: Optional[uuid.UUID] = None
    quantity: int
    unit_price: Optional[float] = None
    material: Optional[MaterialView] = None

    class Config:
        from_attributes = True


class ReportJobRef(BaseModel):
    id: uuid.UUID
    job_code: str
    status: JobStatus
    customer: Optional[JobCustomer] = None


class JobReportView(BaseModel):
    id: uuid.UUID
    job_id: uuid.UUID
    created_by_user_id: Optional[str] = None
    created_by: Optional[UserSummary] = None
    problem_summary: Optional[str] = None
    actions_taken: Optional[str] = None
    image_urls: List[str] = []
    voice_message_url: Optional[str] = None
    customer_ref: Optional[str] = None
    timestamp: datetime
    job: Optional[ReportJobRef] = None


class JobView(BaseModel):
    id: uuid.UUID
    job_code: str
    customer_id: uuid.UUID
    customer: Optional[JobCustomer] = None
    job_type: JobType
    job_type_label: str
    status: JobStatus
    status_label: str
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    notes: Optional[str] = None
    created_by_user_id: Optional[str] = None
    assigned_technician_id: Optional[str] = None
    technicians: List[UserSummary] = []
    line_items: List[LineItemView] = []
    reports: Optional[List[JobReportView]] = None


class LineItemCreate(BaseModel):
    material_id: Optional[uuid.UUID] = None
    quantity: int = 1
    unit_price: Optional[float] = None

    @field_validator("quantity")
    @classmethod
    def positive_quantity(cls, v):
        if v < 1:
            raise ValueError("quantity must be at least 1")
        return v


class JobCreate(BaseModel):
    job_code: str
    customer_id: uuid.UUID
    job_type: JobType
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    notes: Optional[str] = None
    technician_ids: Optional[List[str]] = None
    # Legacy single technician field
    assigned_technician_id: Optional[str] = None
    line_items: List[LineItemCreate] = []

    @field_validator("job_code", mode="before")
    @classmethod
    def strip_code(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("job_code is required")
        return v

    @field_validator("job_type", mode="before")
    @classmethod
    def any_job_type_encoding(cls, v):
        return JobType.parse(v)

    def roster(self) -> List[str]:
        if self.technician_ids:
            return list(self.technician_ids)
        if self.assigned_technician_id:
            return [self.assigned_technician_id]
        return []


class JobUpdate(BaseModel):
    scheduled_start_time: Optional[datetime] = None
    scheduled_end_time: Optional[datetime] = None
    notes: Optional[str] = None
    technician_ids: Optional[List[str]] = None
    assigned_technician_id: Optional[str] = None
    status: Optional[JobStatus] = None

    @field_validator("status", mode="before")
    @classmethod
    def any_status_encoding(cls, v):
        if v is None:
            return None
        return JobStatus.parse(v)

    def roster(self) -> Optional[List[str]]:
        if self.technician_ids is not None:
            return list(self.technician_ids)
        if "assigned_technician_id" in self.model_fields_set:
            return [self.assigned_technician_id] if self.assigned_technician_id else []
        return None


class JobAssign(BaseModel):
    job_id: uuid.UUID
    technician_ids: Optional[List[str]] = None
    technician_id: Optional[str] = None

    @model_validator(mode="after")
    def some_technician(self):
        if not self.technician_ids and not self.technician_id:
            raise ValueError("job_id and technician_id (or technician_ids) are required")
        return self

    def roster(self) -> List[str]:
        return list(self.technician_ids) if self.technician_ids else [self.technician_id]


class JobReportCreate(BaseModel):
    job_id: uuid.UUID
    problem_summary: Optional[str] = None
    actions_taken: Optional[str] = None
    image_urls: List[str] = []
    voice_message_url: Optional[str] = None
    customer_ref: Optional[str] = None

    @field_validator("image_urls", mode="before")
    @classmethod
    def drop_blank_urls(cls, v):
        if v is None:
            return []
        return [str(u).strip() for u in v if u and str(u).strip()]

    @field_validator("voice_message_url", mode="before")
    @classmethod
    def blank_voice_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class JobReportUpdate(BaseModel):
    problem_summary: Optional[str] = None
    actions_taken: Optional[str] = None
    image_urls: Optional[List[str]] = None
    voice_message_url: Optional[str] = None
    customer_ref: Optional[str] = None

    @field_validator("image_urls", mode="before")
    @classmethod
    def drop_blank_urls(cls, v):
        if v is None:
            return None
        return [str(u).strip() for u in v if u and str(u).strip()]
