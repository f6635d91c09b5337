import uuid
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth.security import get_current_actor
from ..db import get_db
from ..schemas.jobs import JobReportCreate, JobReportUpdate
from ..services import job_reports as report_service
from ..services.jobs import present_report
from ..services.pagination import PageParams, page_params
from ..services.policy import Actor


router = APIRouter(prefix="/api/job-reports", tags=["job-reports"])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_report(payload: JobReportCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    report = report_service.submit_report(db, actor, payload)
    return present_report(actor, report)


@router.get("")
def list_reports(
    job_id: Optional[uuid.UUID] = None,
    search: Optional[str] = None,
    params: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return report_service.list_reports(db, actor, params, job_id=job_id, search=search)


@router.put("/{report_id}")
def update_report(
    report_id: uuid.UUID,
    payload: JobReportUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    report = report_service.update_report(db, actor, report_id, payload)
    return present_report(actor, report)


@router.delete("/{report_id}")
def delete_report(report_id: uuid.UUID, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    report_service.delete_report(db, actor, report_id)
    return {"message": "Job report deleted successfully"}
