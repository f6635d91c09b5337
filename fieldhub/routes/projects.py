import uuid
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, selectinload

from ..auth.security import require_action
from ..db import get_db
from ..errors import NotFound, ValidationError
from ..models.models import Customer, Project, ProjectItem, ProjectPersonnel, ProjectSerial, User
from ..schemas.projects import ProjectCreate, ProjectItemIn, ProjectResponse, ProjectUpdate
from ..services.policy import Action, Actor


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


def _build_items(items: List[ProjectItemIn]) -> List[ProjectItem]:
    rows = []
    for item in items:
        if item.warranty_start_date and item.warranty_end_date and item.warranty_end_date < item.warranty_start_date:
            raise ValidationError(f"Warranty end date is before its start for {item.model_name}")
        rows.append(
            ProjectItem(
                model_name=item.model_name,
                quantity=item.quantity,
                warranty_start_date=item.warranty_start_date,
                warranty_end_date=item.warranty_end_date,
                serials=[ProjectSerial(serial_number=s) for s in item.serial_numbers],
            )
        )
    return rows


def _build_personnel(db: Session, user_ids: List[str]) -> List[ProjectPersonnel]:
    ordered = list(dict.fromkeys(u.strip() for u in user_ids if u and u.strip()))
    found = {u for (u,) in db.query(User.id).filter(User.id.in_(ordered)).all()} if ordered else set()
    missing = [u for u in ordered if u not in found]
    if missing:
        raise NotFound(f"User not found: {', '.join(missing)}")
    return [ProjectPersonnel(user_id=u) for u in ordered]


def _load_project(db: Session, project_id: uuid.UUID) -> Project:
    row = (
        db.query(Project)
        .options(selectinload(Project.items).selectinload(ProjectItem.serials), selectinload(Project.personnel))
        .filter(Project.id == project_id)
        .one_or_none()
    )
    if row is None:
        raise NotFound("Project not found")
    return row


@router.get("")
def list_projects(
    customer_id: Optional[uuid.UUID] = None,
    db: Session = Depends(get_db),
    _: Actor = Depends(require_action(Action.VIEW_PROJECTS)),
):
    query = db.query(Project).options(
        selectinload(Project.items).selectinload(ProjectItem.serials), selectinload(Project.personnel)
    )
    if customer_id is not None:
        query = query.filter(Project.customer_id == customer_id)
    rows = query.order_by(Project.created_at.desc()).all()
    return {"data": [ProjectResponse.model_validate(r).model_dump(mode="json") for r in rows]}


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_PROJECTS)),
):
    if db.get(Customer, payload.customer_id) is None:
        raise NotFound("Customer not found")
    data = payload.model_dump(exclude={"items", "personnel_ids"})
    row = Project(**data)
    row.items = _build_items(payload.items)
    row.personnel = _build_personnel(db, payload.personnel_ids)
    db.add(row)
    db.commit()
    logger.info("project_created", project_id=str(row.id), actor_id=actor.id)
    return _load_project(db, row.id)


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_action(Action.MANAGE_PROJECTS)),
):
    row = _load_project(db, project_id)
    data = payload.model_dump(exclude_unset=True, exclude={"items", "personnel_ids"})
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("name must not be empty")
    # Build replacements first so a bad personnel id leaves the project untouched
    items = _build_items(payload.items) if payload.items is not None else None
    personnel = _build_personnel(db, payload.personnel_ids) if payload.personnel_ids is not None else None
    for key, value in data.items():
        setattr(row, key, value)
    if items is not None:
        row.items = items
    if personnel is not None:
        existing = {p.user_id: p for p in row.personnel}
        row.personnel = [existing.get(p.user_id, p) for p in personnel]
    row.updated_at = datetime.now(timezone.utc)
    db.commit()
    logger.info("project_updated", project_id=str(row.id), actor_id=actor.id, fields=sorted(payload.model_fields_set))
    return _load_project(db, row.id)
