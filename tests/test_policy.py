"""
Role policy table: every action against every role.
"""
import uuid

import pytest

from fieldhub.errors import Forbidden, Unauthenticated
from fieldhub.models.enums import UserRole
from fieldhub.services.policy import (
    Action,
    Actor,
    ResourceFacts,
    can,
    has_grant,
    require,
    same_department,
)

A, M, S, T = UserRole.ADMIN, UserRole.MANAGER, UserRole.SALES, UserRole.TECHNICIAN

IN_SCOPE = ResourceFacts(is_assigned=True, same_department=True)
OUT_OF_SCOPE = ResourceFacts(is_assigned=False, same_department=False)

TABLE = {
    Action.VIEW_CUSTOMERS: {A, M},
    Action.VIEW_INVENTORY: {A, M, S},
    Action.CREATE_CUSTOMER: {A, M, S},
    Action.CREATE_CONTACT: {A, M, S},
    Action.DELETE_CONTACT: {A, M},
    Action.CREATE_JOB: {A, M},
    Action.ASSIGN_TECHNICIAN: {A, M},
    Action.APPROVE_JOB: {A, M},
    Action.EDIT_JOB_REPORT: {A, M},
    Action.DELETE_JOB_REPORT: {A},
    Action.VIEW_JOB_FINANCIALS: {A, M, S},
    Action.VIEW_JOB_CUSTOMER_DETAILS: {A, M, T},
    Action.MANAGE_USERS: {A},
}


def actor(role, dept=None):
    return Actor(id=f"{role.value.lower()}-1", role=role, department_id=dept)


class TestPolicyTable:
    @pytest.mark.parametrize(
        "action,role,allowed",
        [(action, role, role in roles) for action, roles in TABLE.items() for role in (A, M, S, T)],
    )
    def test_role_grants_with_resource_in_scope(self, action, role, allowed):
        assert can(actor(role), action, IN_SCOPE) is allowed

    @pytest.mark.parametrize("action", list(Action))
    def test_not_assign_is_denied_everything(self, action):
        assert can(actor(UserRole.NOT_ASSIGN), action, IN_SCOPE) is False

    @pytest.mark.parametrize("action", list(Action))
    def test_missing_actor_is_denied_everything(self, action):
        assert can(None, action, IN_SCOPE) is False


class TestScopedActions:
    @pytest.mark.parametrize(
        "action", [Action.ASSIGN_TECHNICIAN, Action.APPROVE_JOB, Action.EDIT_JOB, Action.FINALIZE_JOB]
    )
    def test_manager_needs_same_department(self, action):
        assert can(actor(M), action, IN_SCOPE) is True
        assert can(actor(M), action, OUT_OF_SCOPE) is False

    @pytest.mark.parametrize(
        "action", [Action.ASSIGN_TECHNICIAN, Action.APPROVE_JOB, Action.EDIT_JOB, Action.FINALIZE_JOB]
    )
    def test_admin_ignores_department(self, action):
        assert can(actor(A), action, OUT_OF_SCOPE) is True

    def test_technician_reports_only_on_assigned_jobs(self):
        assert can(actor(T), Action.SUBMIT_JOB_REPORT, ResourceFacts(is_assigned=True)) is True
        assert can(actor(T), Action.SUBMIT_JOB_REPORT, ResourceFacts(is_assigned=False)) is False

    def test_manager_may_report_on_any_job(self):
        assert can(actor(M), Action.SUBMIT_JOB_REPORT, OUT_OF_SCOPE) is True

    def test_sales_never_reports(self):
        assert can(actor(S), Action.SUBMIT_JOB_REPORT, IN_SCOPE) is False

    def test_has_grant_ignores_facts(self):
        assert has_grant(actor(M), Action.APPROVE_JOB) is True
        assert has_grant(actor(S), Action.APPROVE_JOB) is False
        assert has_grant(None, Action.VIEW_JOBS) is False


class TestRequire:
    def test_missing_actor_is_unauthenticated(self):
        with pytest.raises(Unauthenticated):
            require(None, Action.VIEW_CUSTOMERS)

    def test_denied_raises_forbidden_with_message(self):
        with pytest.raises(Forbidden, match="no customers for you"):
            require(actor(T), Action.VIEW_CUSTOMERS, message="no customers for you")

    def test_allowed_returns_actor(self):
        a = actor(A)
        assert require(a, Action.MANAGE_USERS) is a


class TestSameDepartment:
    def test_missing_department_never_matches(self):
        dept = uuid.uuid4()
        assert same_department(None, None) is False
        assert same_department(dept, None) is False
        assert same_department(None, dept) is False

    def test_equal_ids_match_across_types(self):
        dept = uuid.uuid4()
        assert same_department(dept, uuid.UUID(str(dept))) is True
        assert same_department(dept, str(dept)) is True
        assert same_department(dept, uuid.uuid4()) is False
