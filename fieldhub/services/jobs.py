"""
Job operations against the store.

Each public function is one request's worth of work: load, authorize,
validate the transition, then write and commit. Checks happen before any
write; a failed check leaves the session untouched. Status changes are
compare-and-set updates on the expected status, so of two concurrent
transitions from the same state only one commits and the other gets
``StaleState``.
"""
import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy import String, and_, exists, or_, select, type_coerce, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..errors import Conflict, InvalidStateTransition, NotFound, StaleState, ValidationError
from ..models.enums import JobStatus, UserRole
from ..models.models import Customer, Job, JobLineItem, JobReport, JobTechnician, MaterialService, User
from ..schemas.jobs import (
    JobAssign,
    JobCreate,
    JobCustomer,
    JobReportView,
    JobUpdate,
    JobView,
    LineItemView,
    MaterialView,
    ReportJobRef,
    UserSummary,
)
from .assignment import authorize_roster
from .job_lifecycle import (
    INITIAL_STATUS,
    JobEvent,
    authorize_approval,
    authorize_finalize,
    ensure_editable,
    ensure_transition,
    expected_status,
    status_after_assignment,
)
from .pagination import PageParams, paginate
from .policy import Action, Actor, ResourceFacts, require, require_grant, same_department
from .visibility import render_job, render_report


logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _check_schedule(start: Optional[datetime], end: Optional[datetime]) -> None:
    start, end = _as_utc(start), _as_utc(end)
    if start and end and end < start:
        raise ValidationError("scheduled_end_time must not be before scheduled_start_time")


def status_in(*statuses: JobStatus):
    """Match a status in any of its stored encodings."""
    forms = [form for status in statuses for form in status.stored_forms()]
    return type_coerce(Job.status, String).in_(forms)


def _load_options():
    return (
        selectinload(Job.customer),
        selectinload(Job.technician_links).selectinload(JobTechnician.user),
        selectinload(Job.line_items).selectinload(JobLineItem.material),
    )


def load_job(db: Session, job_id: uuid.UUID, for_update: bool = False, with_reports: bool = False) -> Job:
    query = db.query(Job).options(*_load_options()).filter(Job.id == job_id)
    if with_reports:
        query = query.options(selectinload(Job.reports).selectinload(JobReport.created_by))
    if for_update:
        query = query.with_for_update(of=Job)
    job = query.one_or_none()
    if job is None:
        raise NotFound("Job not found")
    return job


def job_facts(actor: Actor, job: Job) -> ResourceFacts:
    is_assigned = any(link.user_id == actor.id for link in job.technician_links)
    primary = job.primary_technician
    if primary is not None:
        in_department = same_department(actor.department_id, primary.department_id)
    else:
        # Unrostered jobs belong to whoever created them
        in_department = job.created_by_user_id == actor.id
    return ResourceFacts(is_assigned=is_assigned, same_department=in_department)


def job_scope_filter(actor: Actor):
    """SQL counterpart of ``job_facts`` for list queries, or None for no filter."""
    if actor.role is UserRole.TECHNICIAN:
        return exists().where(JobTechnician.job_id == Job.id, JobTechnician.user_id == actor.id)
    if actor.role is UserRole.MANAGER:
        created_unrostered = and_(
            Job.created_by_user_id == actor.id,
            ~exists().where(JobTechnician.job_id == Job.id),
        )
        if actor.department_id is None:
            return created_unrostered
        primary_in_department = exists().where(
            JobTechnician.job_id == Job.id,
            JobTechnician.position == 0,
            JobTechnician.user_id == User.id,
            User.department_id == actor.department_id,
        )
        return or_(primary_in_department, created_unrostered)
    return None


_VIEW_DENIED = {
    UserRole.TECHNICIAN: "Forbidden: You can only view your assigned jobs",
    UserRole.MANAGER: "Forbidden: You can only view jobs in your department",
}
_EDIT_DENIED = "Forbidden: You can only modify jobs in your department"


# ---------- presenters ----------

def _user_summary(user: Optional[User]) -> Optional[UserSummary]:
    return UserSummary.model_validate(user) if user is not None else None


def _customer_view(customer: Optional[Customer]) -> Optional[JobCustomer]:
    return JobCustomer.model_validate(customer) if customer is not None else None


def _money(value) -> Optional[float]:
    return float(value) if value is not None else None


def _material_view(material: Optional[MaterialService]) -> Optional[MaterialView]:
    if material is None:
        return None
    return MaterialView(
        id=material.id,
        item_code=material.item_code,
        name=material.name,
        type=material.type,
        unit=material.unit,
        price=_money(material.price),
    )


def _line_item_view(item: JobLineItem) -> LineItemView:
    return LineItemView(
        id=item.id,
        material_id=item.material_id,
        quantity=item.quantity,
        unit_price=_money(item.unit_price),
        material=_material_view(item.material),
    )


def report_view(report: JobReport, include_job: bool = True) -> JobReportView:
    job_ref = None
    if include_job and report.job is not None:
        job_ref = ReportJobRef(
            id=report.job.id,
            job_code=report.job.job_code,
            status=report.job.status,
            customer=_customer_view(report.job.customer),
        )
    return JobReportView(
        id=report.id,
        job_id=report.job_id,
        created_by_user_id=report.created_by_user_id,
        created_by=_user_summary(report.created_by),
        problem_summary=report.problem_summary,
        actions_taken=report.actions_taken,
        image_urls=list(report.image_urls or []),
        voice_message_url=report.voice_message_url,
        customer_ref=report.customer_ref,
        timestamp=report.timestamp,
        job=job_ref,
    )


def job_view(job: Job, include_reports: bool = False) -> JobView:
    return JobView(
        id=job.id,
        job_code=job.job_code,
        customer_id=job.customer_id,
        customer=_customer_view(job.customer),
        job_type=job.job_type,
        job_type_label=job.job_type.label,
        status=job.status,
        status_label=job.status.label,
        scheduled_start_time=job.scheduled_start_time,
        scheduled_end_time=job.scheduled_end_time,
        actual_end_time=job.actual_end_time,
        notes=job.notes,
        created_by_user_id=job.created_by_user_id,
        assigned_technician_id=job.assigned_technician_id,
        technicians=[_user_summary(u) for u in job.technicians],
        line_items=[_line_item_view(item) for item in job.line_items],
        reports=[report_view(r, include_job=False) for r in job.reports] if include_reports else None,
    )


def present_job(actor: Actor, job: Job, include_reports: bool = False) -> dict:
    return render_job(actor, job_view(job, include_reports=include_reports))


def present_report(actor: Actor, report: JobReport) -> dict:
    return render_report(actor, report_view(report))


# ---------- writes ----------

def _replace_roster(job: Job, roster: List[User]) -> None:
    existing = {link.user_id: link for link in job.technician_links}
    links = []
    for position, user in enumerate(roster):
        link = existing.get(user.id) or JobTechnician(user_id=user.id)
        link.position = position
        links.append(link)
    job.technician_links = links


def _compare_and_set(db: Session, job: Job, event: JobEvent, **values) -> None:
    result = db.execute(
        update(Job)
        .where(Job.id == job.id, status_in(*expected_status(event)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning("job_transition_lost", job_id=str(job.id), transition=event.value)
        raise StaleState(f"Job {job.job_code} changed status while processing {event.value}; reload and retry")


def _commit_and_reload(db: Session, job_id: uuid.UUID, with_reports: bool = False) -> Job:
    db.commit()
    db.expire_all()
    return load_job(db, job_id, with_reports=with_reports)


def _build_line_items(db: Session, items) -> List[JobLineItem]:
    rows = []
    for item in items:
        material = None
        if item.material_id is not None:
            material = db.get(MaterialService, item.material_id)
            if material is None:
                raise NotFound(f"Material or service not found: {item.material_id}")
        unit_price = item.unit_price if item.unit_price is not None else (material.price if material else None)
        rows.append(JobLineItem(material_id=item.material_id, quantity=item.quantity, unit_price=unit_price))
    return rows


def create_job(db: Session, actor: Actor, payload: JobCreate) -> Job:
    require_grant(actor, Action.CREATE_JOB, "Forbidden: Only Admin and Manager can create jobs")
    _check_schedule(payload.scheduled_start_time, payload.scheduled_end_time)
    roster = authorize_roster(db, actor, payload.roster())
    if db.get(Customer, payload.customer_id) is None:
        raise NotFound("Customer not found")
    if db.query(Job.id).filter(Job.job_code == payload.job_code).first():
        raise Conflict("Job code already exists")
    line_items = _build_line_items(db, payload.line_items)

    job = Job(
        job_code=payload.job_code,
        customer_id=payload.customer_id,
        job_type=payload.job_type,
        status=INITIAL_STATUS,
        scheduled_start_time=payload.scheduled_start_time,
        scheduled_end_time=payload.scheduled_end_time,
        notes=payload.notes,
        created_by_user_id=actor.id,
    )
    _replace_roster(job, roster)
    job.line_items = line_items
    db.add(job)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise Conflict("Job code already exists")
    logger.info("job_created", job_id=str(job.id), job_code=job.job_code, actor_id=actor.id, technicians=len(roster))
    return _commit_and_reload(db, job.id)


def list_jobs(
    db: Session,
    actor: Actor,
    params: PageParams,
    status: Optional[JobStatus] = None,
    search: Optional[str] = None,
) -> dict:
    require_grant(actor, Action.VIEW_JOBS)
    query = db.query(Job).options(*_load_options())
    scope = job_scope_filter(actor)
    if scope is not None:
        query = query.filter(scope)
    if status is not None:
        query = query.filter(status_in(status))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Job.job_code.ilike(like),
                Job.customer_id.in_(select(Customer.id).where(Customer.company_name.ilike(like))),
            )
        )
    query = query.order_by(Job.scheduled_start_time.desc().nulls_last(), Job.created_at.desc())
    return paginate(query, params, present=lambda job: present_job(actor, job))


def get_job(db: Session, actor: Actor, job_id: uuid.UUID) -> Job:
    job = load_job(db, job_id, with_reports=True)
    require(actor, Action.VIEW_JOBS, job_facts(actor, job), _VIEW_DENIED.get(actor.role))
    return job


def _technician_department(job: Job) -> Optional[uuid.UUID]:
    primary = job.primary_technician
    return primary.department_id if primary is not None else None


def approve_job(db: Session, actor: Actor, job_id: uuid.UUID) -> Job:
    job = load_job(db, job_id, for_update=True)
    authorize_approval(actor, _technician_department(job))
    target = ensure_transition(job.status, JobEvent.APPROVE)
    _compare_and_set(db, job, JobEvent.APPROVE, status=target, actual_end_time=utcnow())
    logger.info("job_approved", job_id=str(job.id), actor_id=actor.id)
    return _commit_and_reload(db, job.id)


def finalize_job(db: Session, actor: Actor, job_id: uuid.UUID) -> Job:
    job = load_job(db, job_id, for_update=True)
    authorize_finalize(actor, _technician_department(job))
    target = ensure_transition(job.status, JobEvent.FINALIZE)
    _compare_and_set(db, job, JobEvent.FINALIZE, status=target, actual_end_time=utcnow())
    logger.info("job_finalized", job_id=str(job.id), actor_id=actor.id)
    return _commit_and_reload(db, job.id)


def _authorize_reassignment(actor: Actor, job: Job) -> None:
    require_grant(actor, Action.ASSIGN_TECHNICIAN, "Forbidden: Only Admin and Manager can assign technicians")
    if actor.role is UserRole.MANAGER and job.technician_links:
        require(actor, Action.EDIT_JOB, job_facts(actor, job), _EDIT_DENIED)


def assign_technicians(db: Session, actor: Actor, payload: JobAssign) -> Job:
    job = load_job(db, payload.job_id, for_update=True)
    _authorize_reassignment(actor, job)
    target = status_after_assignment(job.status)
    roster = authorize_roster(db, actor, payload.roster())
    _replace_roster(job, roster)
    db.flush()
    if target is not None:
        _compare_and_set(db, job, JobEvent.ASSIGN, status=target)
    logger.info("job_assigned", job_id=str(job.id), actor_id=actor.id, technicians=[u.id for u in roster])
    return _commit_and_reload(db, job.id)


def update_job(db: Session, actor: Actor, job_id: uuid.UUID, payload: JobUpdate) -> Job:
    job = load_job(db, job_id, for_update=True)
    require(actor, Action.EDIT_JOB, job_facts(actor, job), _EDIT_DENIED)
    ensure_editable(job.status)

    fields = payload.model_fields_set
    start = payload.scheduled_start_time if "scheduled_start_time" in fields else job.scheduled_start_time
    end = payload.scheduled_end_time if "scheduled_end_time" in fields else job.scheduled_end_time
    _check_schedule(start, end)

    roster_ids = payload.roster()
    roster = None
    if roster_ids is not None:
        _authorize_reassignment(actor, job)
        roster = authorize_roster(db, actor, roster_ids)

    event = None
    target = payload.status if "status" in fields else None
    if target is not None and target is not job.status:
        if target is JobStatus.APPROVED:
            event = JobEvent.APPROVE
            authorize_approval(actor, _technician_department(job))
        elif target is JobStatus.FINALIZED:
            event = JobEvent.FINALIZE
            authorize_finalize(actor, _technician_department(job))
        else:
            raise InvalidStateTransition(
                f"Cannot change job status from {job.status.value} to {target.value} directly"
            )
        ensure_transition(job.status, event)

    job.scheduled_start_time = start
    job.scheduled_end_time = end
    if "notes" in fields:
        job.notes = payload.notes
    if roster is not None:
        _replace_roster(job, roster)
    db.flush()
    if roster and event is None:
        lifted = status_after_assignment(job.status)
        if lifted is not None:
            _compare_and_set(db, job, JobEvent.ASSIGN, status=lifted)
    if event is not None:
        _compare_and_set(db, job, event, status=target, actual_end_time=utcnow())
    logger.info("job_updated", job_id=str(job.id), actor_id=actor.id, fields=sorted(fields))
    return _commit_and_reload(db, job.id)
