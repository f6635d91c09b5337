"""
Assignment resolver: may this actor put this technician on a job?
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional
import uuid

import structlog
from sqlalchemy.orm import Session

from ..errors import Forbidden, NotFound, ValidationError
from ..models.enums import UserRole
from ..models.models import User
from .policy import Action, Actor, ResourceFacts, can, same_department


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TechnicianFacts:
    id: str
    role: UserRole
    department_id: Optional[uuid.UUID] = None


def can_assign(actor: Optional[Actor], technician: Optional[TechnicianFacts]) -> bool:
    if actor is None:
        return False
    if actor.role is UserRole.ADMIN:
        return True
    if technician is None or technician.role is not UserRole.TECHNICIAN:
        return False
    facts = ResourceFacts(same_department=same_department(actor.department_id, technician.department_id))
    return can(actor, Action.ASSIGN_TECHNICIAN, facts)


def _dedupe(ids: Iterable[str]) -> List[str]:
    seen = set()
    ordered = []
    for raw in ids:
        tid = (raw or "").strip()
        if not tid:
            raise ValidationError("Technician id must not be empty")
        if tid not in seen:
            seen.add(tid)
            ordered.append(tid)
    return ordered


def authorize_roster(db: Session, actor: Actor, technician_ids: Iterable[str]) -> List[User]:
    """Load and authorize every requested technician, keeping request order.

    Each id is checked on its own; one unauthorized id rejects the whole roster.
    """
    ordered = _dedupe(technician_ids)
    if not ordered:
        return []
    rows = {u.id: u for u in db.query(User).filter(User.id.in_(ordered)).all()}
    roster = []
    for tid in ordered:
        user = rows.get(tid)
        if user is None:
            raise NotFound(f"Technician not found: {tid}")
        facts = TechnicianFacts(id=user.id, role=user.role, department_id=user.department_id)
        if not can_assign(actor, facts):
            logger.info("assignment_denied", actor_id=actor.id, technician_id=tid)
            raise Forbidden(f"Forbidden: You cannot assign jobs to technician {tid}")
        roster.append(user)
    return roster
