import os

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import settings
from .db import Base, engine
from .errors import register_error_handlers
from .logging import setup_logging, RequestIdMiddleware
from .models import models  # noqa: F401  registers tables on Base.metadata
from .routes.calendar import router as calendar_router
from .routes.chat import router as chat_router
from .routes.contacts import router as contacts_router
from .routes.customers import router as customers_router
from .routes.health import router as health_router
from .routes.inventory import router as inventory_router
from .routes.job_reports import router as job_reports_router
from .routes.jobs import router as jobs_router
from .routes.projects import router as projects_router
from .routes.users import departments_router, router as users_router


logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title=settings.app_name)

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    register_error_handlers(app)

    # Routers
    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(departments_router)
    app.include_router(customers_router)
    app.include_router(contacts_router)
    app.include_router(projects_router)
    app.include_router(inventory_router)
    app.include_router(jobs_router)
    app.include_router(job_reports_router)
    app.include_router(calendar_router)
    app.include_router(chat_router)

    # Metrics
    Instrumentator().instrument(app).expose(app)

    @app.on_event("startup")
    def _startup():
        # Ensure local SQLite directory exists
        if settings.database_url.startswith("sqlite:///./"):
            os.makedirs("var", exist_ok=True)
        if settings.auto_create_db:
            Base.metadata.create_all(bind=engine)
            logger.info("database_tables_ready")
        logger.info("startup_complete", app=settings.app_name, environment=settings.environment)

    return app


app = create_app()
