import uuid

import structlog

from fieldhub.config import settings
from fieldhub.logging import _add_service, bind_actor
from fieldhub.models.enums import UserRole
from fieldhub.services.policy import Actor

from conftest import auth


def test_bind_actor_tags_context():
    dept = uuid.uuid4()
    structlog.contextvars.clear_contextvars()
    bind_actor(Actor(id="tech_a1", role=UserRole.TECHNICIAN, department_id=dept))
    try:
        bound = structlog.contextvars.get_contextvars()
        assert bound["actor_id"] == "tech_a1"
        assert bound["actor_role"] == "Technician"
        assert bound["actor_department_id"] == str(dept)
    finally:
        structlog.contextvars.clear_contextvars()


def test_bind_actor_without_department():
    structlog.contextvars.clear_contextvars()
    bind_actor(Actor(id="admin", role=UserRole.ADMIN))
    try:
        assert structlog.contextvars.get_contextvars()["actor_department_id"] is None
    finally:
        structlog.contextvars.clear_contextvars()


def test_service_processor_keeps_explicit_values():
    event = _add_service(None, "info", {"event": "job_approved"})
    assert event["service"] == settings.app_name
    assert event["env"] == settings.environment
    assert _add_service(None, "info", {"event": "x", "service": "worker"})["service"] == "worker"


def test_request_id_echoed(client, seed):
    resp = client.get("/api/users/me", headers={**auth("admin"), "X-Request-ID": "req-42"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "req-42"
