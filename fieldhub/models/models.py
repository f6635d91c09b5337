import uuid
from datetime import datetime, date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    JSON,
    UniqueConstraint,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from .enums import JobStatus, JobType, LegacyEnumType, UserRole


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    users = relationship("User", back_populates="department")


class User(Base):
    __tablename__ = "users"

    # Subject id issued by the identity provider
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=UserRole.NOT_ASSIGN,
        nullable=False,
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL"), index=True
    )
    phone_number: Mapped[Optional[str]] = mapped_column(String(50))
    id_card_no: Mapped[Optional[str]] = mapped_column(String(50))
    dob: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    department = relationship("Department", back_populates="users")


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = uuid_pk()
    company_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    customer_type: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    contacts = relationship("Contact", back_populates="customer", cascade="all, delete-orphan")


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = uuid_pk()
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    customer = relationship("Customer", back_populates="contacts")


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = uuid_pk()
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(String(500))
    contact_person: Mapped[Optional[str]] = mapped_column(String(255))
    contact_position: Mapped[Optional[str]] = mapped_column(String(255))
    input_contract_no: Mapped[Optional[str]] = mapped_column(String(100))
    input_contract_date: Mapped[Optional[date]] = mapped_column(Date)
    output_contract_no: Mapped[Optional[str]] = mapped_column(String(100))
    output_contract_date: Mapped[Optional[date]] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    items = relationship("ProjectItem", back_populates="project", cascade="all, delete-orphan")
    personnel = relationship("ProjectPersonnel", back_populates="project", cascade="all, delete-orphan")


class ProjectItem(Base):
    __tablename__ = "project_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    model_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    warranty_start_date: Mapped[Optional[date]] = mapped_column(Date)
    warranty_end_date: Mapped[Optional[date]] = mapped_column(Date)

    project = relationship("Project", back_populates="items")
    serials = relationship(
        "ProjectSerial", back_populates="item", cascade="all, delete-orphan", order_by="ProjectSerial.serial_number"
    )


class ProjectSerial(Base):
    __tablename__ = "project_serials"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("project_items.id", ondelete="CASCADE"), nullable=False, index=True
    )
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False)

    item = relationship("ProjectItem", back_populates="serials")


class ProjectPersonnel(Base):
    __tablename__ = "project_personnel"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_personnel"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    project = relationship("Project", back_populates="personnel")
    user = relationship("User")


class MaterialService(Base):
    __tablename__ = "materials_and_services"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), default="material", nullable=False)  # material|service
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    customer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True
    )
    job_type: Mapped[JobType] = mapped_column(LegacyEnumType(JobType), nullable=False)
    status: Mapped[JobStatus] = mapped_column(LegacyEnumType(JobStatus), default=JobStatus.ASSIGNED, nullable=False, index=True)
    scheduled_start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    scheduled_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    customer = relationship("Customer")
    created_by = relationship("User", foreign_keys=[created_by_user_id])
    technician_links: Mapped[List["JobTechnician"]] = relationship(
        "JobTechnician",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobTechnician.position",
    )
    line_items = relationship("JobLineItem", back_populates="job", cascade="all, delete-orphan")
    reports = relationship(
        "JobReport", back_populates="job", cascade="all, delete-orphan", order_by="JobReport.timestamp.desc()"
    )

    @property
    def technicians(self) -> List["User"]:
        return [link.user for link in self.technician_links]

    @property
    def primary_technician(self) -> Optional["User"]:
        return self.technician_links[0].user if self.technician_links else None

    @property
    def assigned_technician_id(self) -> Optional[str]:
        # Legacy single-value field, always derived from the roster
        return self.technician_links[0].user_id if self.technician_links else None


class JobTechnician(Base):
    __tablename__ = "job_technicians"
    __table_args__ = (UniqueConstraint("job_id", "user_id", name="uq_job_technician"),)

    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    job = relationship("Job", back_populates="technician_links")
    user = relationship("User")


class JobLineItem(Base):
    __tablename__ = "job_line_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    material_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("materials_and_services.id"))
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2))

    job = relationship("Job", back_populates="line_items")
    material = relationship("MaterialService")


class JobReport(Base):
    __tablename__ = "job_reports"

    id: Mapped[uuid.UUID] = uuid_pk()
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id", ondelete="SET NULL"))
    problem_summary: Mapped[Optional[str]] = mapped_column(Text)
    actions_taken: Mapped[Optional[str]] = mapped_column(Text)
    image_urls: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    voice_message_url: Mapped[Optional[str]] = mapped_column(String(1000))
    customer_ref: Mapped[Optional[str]] = mapped_column(String(255))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    job = relationship("Job", back_populates="reports")
    created_by = relationship("User")


class InventoryProduct(Base):
    __tablename__ = "dim_product"

    product_id: Mapped[uuid.UUID] = uuid_pk()
    product_code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    model_name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class InventoryMonthOpening(Base):
    __tablename__ = "inventory_month_opening"
    __table_args__ = (UniqueConstraint("year", "month", "product_id", name="uq_month_opening"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dim_product.product_id", ondelete="CASCADE"), nullable=False
    )
    opening_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255))


class InventoryDailyMovement(Base):
    __tablename__ = "inventory_daily_movement"
    __table_args__ = (UniqueConstraint("year", "month", "day", "product_id", name="uq_daily_movement"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("dim_product.product_id", ondelete="CASCADE"), nullable=False
    )
    in_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    out_qty: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    note: Mapped[Optional[str]] = mapped_column(String(255))


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id: Mapped[uuid.UUID] = uuid_pk()
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by_user_id: Mapped[Optional[str]] = mapped_column(String(64), ForeignKey("users.id", ondelete="SET NULL"))


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[str] = mapped_column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    summary: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    messages = relationship(
        "ChatMessage", back_populates="session", cascade="all, delete-orphan", order_by="ChatMessage.timestamp"
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = uuid_pk()
    session_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # user|assistant
    content: Mapped[str] = mapped_column(Text, nullable=False)
    retrieved_context: Mapped[Optional[dict]] = mapped_column(JSON)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    session = relationship("ChatSession", back_populates="messages")
