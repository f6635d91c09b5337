import uuid
import logging
import structlog
import os
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from .config import settings


logger = structlog.get_logger(__name__)

# Keys bound per request; cleared again when the response leaves
_REQUEST_KEYS = ("request_id", "actor_id", "actor_role", "actor_department_id")


def _add_service(_logger, method_name, event_dict):
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("env", settings.environment)
    return event_dict


def setup_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(format="%(message)s", level=getattr(logging, level, logging.INFO))
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _add_service,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_actor(actor) -> None:
    """Tag every later log line of this request with who is acting."""
    structlog.contextvars.bind_contextvars(
        actor_id=actor.id,
        actor_role=actor.role.value,
        actor_department_id=str(actor.department_id) if actor.department_id else None,
    )


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response: Response = await call_next(request)
            logger.info("request_completed", method=request.method, path=request.url.path, status_code=response.status_code)
        finally:
            structlog.contextvars.unbind_contextvars(*_REQUEST_KEYS)
        response.headers["X-Request-ID"] = request_id
        return response
