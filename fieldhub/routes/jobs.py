import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..auth.security import get_current_actor
from ..db import get_db
from ..errors import ValidationError
from ..models.enums import JobStatus
from ..schemas.jobs import JobAssign, JobCreate, JobUpdate
from ..services import jobs as job_service
from ..services.pagination import PageParams, page_params
from ..services.policy import Actor


router = APIRouter(prefix="/api/jobs", tags=["jobs"])


def _status_filter(raw: Optional[str]) -> Optional[JobStatus]:
    if not raw:
        return None
    status_value = JobStatus.try_parse(raw)
    if status_value is None:
        raise ValidationError(f"Unknown job status: {raw}")
    return status_value


@router.get("")
def list_jobs(
    status_: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return job_service.list_jobs(db, actor, params, status=_status_filter(status_), search=search)


@router.post("", status_code=status.HTTP_201_CREATED)
def create_job(payload: JobCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    job = job_service.create_job(db, actor, payload)
    return job_service.present_job(actor, job)


# Registered before /{job_id} so "assign" is never read as an id
@router.post("/assign")
def assign_technicians(payload: JobAssign, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    job = job_service.assign_technicians(db, actor, payload)
    return job_service.present_job(actor, job)


@router.get("/{job_id}")
def get_job(job_id: uuid.UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    job = job_service.get_job(db, actor, job_id)
    return job_service.present_job(actor, job, include_reports=True)


@router.patch("/{job_id}")
def update_job(
    job_id: uuid.UUID,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    job = job_service.update_job(db, actor, job_id, payload)
    return job_service.present_job(actor, job)


@router.post("/{job_id}/approve")
def approve_job(job_id: uuid.UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    job = job_service.approve_job(db, actor, job_id)
    return job_service.present_job(actor, job)


@router.post("/{job_id}/finalize")
def finalize_job(job_id: uuid.UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    job = job_service.finalize_job(db, actor, job_id)
    return job_service.present_job(actor, job)
