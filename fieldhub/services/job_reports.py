import uuid
from typing import Optional

import structlog
from sqlalchemy import exists, or_, select, update
from sqlalchemy.orm import Session, selectinload

from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..models.enums import JobStatus, UserRole
from ..models.models import Customer, Job, JobReport, User
from ..schemas.jobs import JobReportCreate, JobReportUpdate
from .job_lifecycle import JobEvent, ensure_editable, expected_status, status_after_report
from .jobs import job_facts, load_job, present_report, status_in
from .pagination import PageParams, paginate
from .policy import Action, Actor, require, require_grant


logger = structlog.get_logger(__name__)

_NO_EVIDENCE = "Report must include at least one image or a voice message"


def _check_evidence(image_urls, voice_message_url) -> None:
    if not image_urls and not voice_message_url:
        raise ValidationError(_NO_EVIDENCE)


def _load_report(db: Session, report_id: uuid.UUID) -> JobReport:
    report = (
        db.query(JobReport)
        .options(selectinload(JobReport.created_by), selectinload(JobReport.job).selectinload(Job.customer))
        .filter(JobReport.id == report_id)
        .one_or_none()
    )
    if report is None:
        raise NotFound("Job report not found")
    return report


def submit_report(db: Session, actor: Actor, payload: JobReportCreate) -> JobReport:
    """File a field report and move the job to PendingApproval when it is still open."""
    require_grant(actor, Action.SUBMIT_JOB_REPORT, "Forbidden: Sales cannot submit job reports")
    _check_evidence(payload.image_urls, payload.voice_message_url)
    job = load_job(db, payload.job_id, for_update=True)
    require(actor, Action.SUBMIT_JOB_REPORT, job_facts(actor, job), "Forbidden: You can only report on jobs assigned to you")
    target = status_after_report(job.status)

    report = JobReport(
        job_id=job.id,
        created_by_user_id=actor.id,
        problem_summary=payload.problem_summary,
        actions_taken=payload.actions_taken,
        image_urls=list(payload.image_urls),
        voice_message_url=payload.voice_message_url,
        customer_ref=payload.customer_ref,
    )
    db.add(report)
    db.flush()

    if target is not None:
        result = db.execute(
            update(Job)
            .where(Job.id == job.id, status_in(*expected_status(JobEvent.SUBMIT_REPORT)))
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # Another request moved the job first; only a finalized job refuses the report
            current = db.execute(select(Job.status).where(Job.id == job.id)).scalar_one()
            if current is JobStatus.FINALIZED:
                db.rollback()
                raise InvalidStateTransition("Job is finalized; no further reports can be submitted")

    db.commit()
    logger.info(
        "job_report_submitted",
        report_id=str(report.id), job_id=str(job.id), actor_id=actor.id,
        images=len(report.image_urls), voice=bool(report.voice_message_url),
    )
    return _load_report(db, report.id)


def list_reports(
    db: Session,
    actor: Actor,
    params: PageParams,
    job_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
) -> dict:
    require_grant(actor, Action.VIEW_JOBS)
    query = db.query(JobReport).options(
        selectinload(JobReport.created_by), selectinload(JobReport.job).selectinload(Job.customer)
    )
    if actor.role is UserRole.TECHNICIAN:
        query = query.filter(JobReport.created_by_user_id == actor.id)
    elif actor.role is UserRole.MANAGER:
        if actor.department_id is None:
            query = query.filter(JobReport.created_by_user_id == actor.id)
        else:
            query = query.filter(
                exists().where(User.id == JobReport.created_by_user_id, User.department_id == actor.department_id)
            )
    if job_id is not None:
        query = query.filter(JobReport.job_id == job_id)
    if search:
        like = f"%{search.strip()}%"
        matching_jobs = (
            select(Job.id)
            .join(Customer, Customer.id == Job.customer_id)
            .where(or_(Job.job_code.ilike(like), Customer.company_name.ilike(like)))
        )
        query = query.filter(
            or_(
                JobReport.problem_summary.ilike(like),
                JobReport.actions_taken.ilike(like),
                JobReport.job_id.in_(matching_jobs),
            )
        )
    query = query.order_by(JobReport.timestamp.desc())
    return paginate(query, params, present=lambda r: present_report(actor, r))


def update_report(db: Session, actor: Actor, report_id: uuid.UUID, payload: JobReportUpdate) -> JobReport:
    require_grant(actor, Action.EDIT_JOB_REPORT, "Forbidden: Only Admin and Manager can edit job reports")
    report = _load_report(db, report_id)
    ensure_editable(report.job.status)

    fields = payload.model_fields_set
    image_urls = payload.image_urls if "image_urls" in fields and payload.image_urls is not None else report.image_urls
    voice = report.voice_message_url
    if "voice_message_url" in fields:
        voice = (payload.voice_message_url or "").strip() or None
    _check_evidence(image_urls, voice)

    for name in ("problem_summary", "actions_taken", "customer_ref"):
        if name in fields:
            setattr(report, name, getattr(payload, name))
    report.image_urls = list(image_urls or [])
    report.voice_message_url = voice
    db.commit()
    logger.info("job_report_updated", report_id=str(report.id), actor_id=actor.id, fields=sorted(fields))
    return _load_report(db, report.id)


def delete_report(db: Session, actor: Actor, report_id: uuid.UUID) -> None:
    require_grant(actor, Action.DELETE_JOB_REPORT, "Forbidden: Only Admin can delete job reports")
    report = _load_report(db, report_id)
    ensure_editable(report.job.status)
    db.delete(report)
    db.commit()
    logger.info("job_report_deleted", report_id=str(report_id), actor_id=actor.id)
