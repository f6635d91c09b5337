"""
Job lifecycle state machine.

    New -> Assigned -> PendingApproval -> Approved -> Finalized

Only the transitions listed in ``TRANSITIONS`` exist. Everything here is pure:
the store-bound side in ``services/jobs.py`` calls these checks before it
writes anything, and writes with a compare-and-set on the expected status.
"""
import enum
import uuid
from typing import Optional

from ..errors import Forbidden, InvalidStateTransition
from ..models.enums import JobStatus, UserRole
from .policy import Action, Actor, ResourceFacts, require, same_department


class JobEvent(str, enum.Enum):
    ASSIGN = "assign"
    SUBMIT_REPORT = "submit_report"
    APPROVE = "approve"
    FINALIZE = "finalize"


TRANSITIONS = {
    (JobStatus.NEW, JobEvent.ASSIGN): JobStatus.ASSIGNED,
    (JobStatus.NEW, JobEvent.SUBMIT_REPORT): JobStatus.PENDING_APPROVAL,
    (JobStatus.ASSIGNED, JobEvent.SUBMIT_REPORT): JobStatus.PENDING_APPROVAL,
    (JobStatus.PENDING_APPROVAL, JobEvent.APPROVE): JobStatus.APPROVED,
    (JobStatus.APPROVED, JobEvent.FINALIZE): JobStatus.FINALIZED,
}

INITIAL_STATUS = JobStatus.ASSIGNED

_EXPECTED = {
    JobEvent.APPROVE: "pending approval",
    JobEvent.FINALIZE: "approved",
    JobEvent.ASSIGN: "new",
    JobEvent.SUBMIT_REPORT: "assigned",
}


def expected_status(event: JobEvent) -> tuple:
    return tuple(status for (status, ev) in TRANSITIONS if ev is event)


def ensure_transition(current: JobStatus, event: JobEvent) -> JobStatus:
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidStateTransition(
            f"Job is not in {_EXPECTED[event]} status. Current status: {current.value}"
        )
    return target


def status_after_report(current: JobStatus) -> Optional[JobStatus]:
    """New status after a report is filed, or None when no write is needed.

    Re-submitting while pending (or after approval) keeps the current state.
    """
    if current is JobStatus.FINALIZED:
        raise InvalidStateTransition("Job is finalized; no further reports can be submitted")
    return TRANSITIONS.get((current, JobEvent.SUBMIT_REPORT))


def status_after_assignment(current: JobStatus) -> Optional[JobStatus]:
    ensure_editable(current)
    return TRANSITIONS.get((current, JobEvent.ASSIGN))


def ensure_editable(current: JobStatus) -> None:
    if current is JobStatus.FINALIZED:
        raise InvalidStateTransition("Job is finalized and can no longer be modified")


def _authorize_department_action(
    actor: Actor,
    action: Action,
    technician_department_id: Optional[uuid.UUID],
    verb: str,
) -> None:
    if actor.role is not UserRole.MANAGER:
        require(actor, action)
        return
    if actor.department_id is None:
        raise Forbidden(f"Manager must be assigned to a department to {verb} jobs")
    if technician_department_id is None:
        raise Forbidden(f"Cannot {verb}: Technician is not assigned to any department")
    facts = ResourceFacts(same_department=same_department(actor.department_id, technician_department_id))
    require(actor, action, facts, f"Forbidden: You can only {verb} jobs in your department")


def authorize_approval(actor: Actor, technician_department_id: Optional[uuid.UUID]) -> None:
    _authorize_department_action(actor, Action.APPROVE_JOB, technician_department_id, "approve")


def authorize_finalize(actor: Actor, technician_department_id: Optional[uuid.UUID]) -> None:
    _authorize_department_action(actor, Action.FINALIZE_JOB, technician_department_id, "finalize")
