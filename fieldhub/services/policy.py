"""
Role policy.

Pure functions over an ``Actor`` and a few ownership facts about the target
resource. No database access happens here; callers load whatever facts the
action needs and pass them in.
"""
import enum
import uuid
from dataclasses import dataclass
from typing import Optional

from ..errors import Forbidden, Unauthenticated
from ..models.enums import UserRole


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole
    department_id: Optional[uuid.UUID] = None


@dataclass(frozen=True)
class ResourceFacts:
    # Actor is on the job's technician roster
    is_assigned: bool = False
    # Resource falls inside the actor's department
    same_department: bool = False


NO_FACTS = ResourceFacts()


class Action(str, enum.Enum):
    VIEW_CUSTOMERS = "view_customers"
    VIEW_INVENTORY = "view_inventory"
    CREATE_CUSTOMER = "create_customer"
    CREATE_CONTACT = "create_contact"
    DELETE_CONTACT = "delete_contact"
    CREATE_JOB = "create_job"
    ASSIGN_TECHNICIAN = "assign_technician"
    APPROVE_JOB = "approve_job"
    EDIT_JOB_REPORT = "edit_job_report"
    DELETE_JOB_REPORT = "delete_job_report"
    SUBMIT_JOB_REPORT = "submit_job_report"
    VIEW_JOB_FINANCIALS = "view_job_financials"
    VIEW_JOB_CUSTOMER_DETAILS = "view_job_customer_details"
    MANAGE_USERS = "manage_users"

    VIEW_JOBS = "view_jobs"
    EDIT_JOB = "edit_job"
    FINALIZE_JOB = "finalize_job"
    VIEW_CONTACTS = "view_contacts"
    VIEW_PROJECTS = "view_projects"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_INVENTORY = "manage_inventory"
    VIEW_USERS = "view_users"
    MANAGE_DEPARTMENTS = "manage_departments"
    USE_WORKSPACE = "use_workspace"  # calendar, chat


_A, _M, _S, _T = UserRole.ADMIN, UserRole.MANAGER, UserRole.SALES, UserRole.TECHNICIAN

_GRANTS = {
    Action.VIEW_CUSTOMERS: {_A, _M},
    Action.VIEW_INVENTORY: {_A, _M, _S},
    Action.CREATE_CUSTOMER: {_A, _M, _S},
    Action.CREATE_CONTACT: {_A, _M, _S},
    Action.DELETE_CONTACT: {_A, _M},
    Action.CREATE_JOB: {_A, _M},
    Action.ASSIGN_TECHNICIAN: {_A, _M},
    Action.APPROVE_JOB: {_A, _M},
    Action.EDIT_JOB_REPORT: {_A, _M},
    Action.DELETE_JOB_REPORT: {_A},
    Action.SUBMIT_JOB_REPORT: {_A, _M, _T},
    Action.VIEW_JOB_FINANCIALS: {_A, _M, _S},
    Action.VIEW_JOB_CUSTOMER_DETAILS: {_A, _M, _T},
    Action.MANAGE_USERS: {_A},
    Action.VIEW_JOBS: {_A, _M, _S, _T},
    Action.EDIT_JOB: {_A, _M},
    Action.FINALIZE_JOB: {_A, _M},
    Action.VIEW_CONTACTS: {_A, _M, _S},
    Action.VIEW_PROJECTS: {_A, _M, _S, _T},
    Action.MANAGE_PROJECTS: {_A, _M, _S},
    Action.MANAGE_INVENTORY: {_A, _M},
    Action.VIEW_USERS: {_A, _M},
    Action.MANAGE_DEPARTMENTS: {_A},
    Action.USE_WORKSPACE: {_A, _M, _S, _T},
}

# Managers act only inside their own department for these
_DEPARTMENT_SCOPED = {
    Action.ASSIGN_TECHNICIAN,
    Action.APPROVE_JOB,
    Action.EDIT_JOB,
    Action.FINALIZE_JOB,
    Action.VIEW_JOBS,
}

# Technicians act only on jobs they are rostered on for these
_ASSIGNMENT_SCOPED = {
    Action.SUBMIT_JOB_REPORT,
    Action.VIEW_JOBS,
}


def can(actor: Optional[Actor], action: Action, facts: ResourceFacts = NO_FACTS) -> bool:
    if actor is None:
        return False
    if actor.role not in _GRANTS.get(action, ()):
        return False
    if actor.role is UserRole.MANAGER and action in _DEPARTMENT_SCOPED:
        return facts.same_department
    if actor.role is UserRole.TECHNICIAN and action in _ASSIGNMENT_SCOPED:
        return facts.is_assigned
    return True


def require(
    actor: Optional[Actor],
    action: Action,
    facts: ResourceFacts = NO_FACTS,
    message: Optional[str] = None,
) -> Actor:
    if actor is None:
        raise Unauthenticated()
    if not can(actor, action, facts):
        raise Forbidden(message or f"Forbidden: role '{actor.role.value}' is not allowed to {action.value.replace('_', ' ')}")
    return actor


def same_department(a: Optional[uuid.UUID], b: Optional[uuid.UUID]) -> bool:
    """Both present and equal. A missing department never matches."""
    return a is not None and b is not None and str(a) == str(b)


def has_grant(actor: Optional[Actor], action: Action) -> bool:
    """Role-level check, before any resource facts are known."""
    return actor is not None and actor.role in _GRANTS.get(action, ())


def require_grant(actor: Optional[Actor], action: Action, message: Optional[str] = None) -> Actor:
    if actor is None:
        raise Unauthenticated()
    if not has_grant(actor, action):
        raise Forbidden(message or f"Forbidden: role '{actor.role.value}' is not allowed to {action.value.replace('_', ' ')}")
    return actor
