import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from orgtenancy.config import settings
from orgtenancy.exception_handlers import register_exception_handlers
from orgtenancy.middleware.domain_guard import DomainGuardMiddleware
from orgtenancy.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from orgtenancy.middleware.session_recovery import SessionRecoveryMiddleware
from orgtenancy.middleware.tenant import TenantMiddleware, TenantResolver
from orgtenancy.routes import dashboard, health, tenants
from orgtenancy.services.connection_manager import connection_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting %s in %s mode: central_domains=%s strategy=%s",
        settings.app_name,
        settings.environment,
        settings.central_domains,
        settings.resolution_strategy,
    )
    yield
    await connection_manager.dispose_all()
    logger.info("Shutting down the application...")


def create_app(resolver: TenantResolver | None = None) -> FastAPI:
    """Create the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Organization tenancy: provisioning and host-based tenant resolution",
        debug=settings.debug,
        version=settings.app_version,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    # Middleware is LIFO: the last one added runs first.
    # Request order: logging -> session -> session recovery -> tenant -> domain guard -> routes
    app.add_middleware(DomainGuardMiddleware)
    app.add_middleware(TenantMiddleware, resolver=resolver)
    app.add_middleware(SessionRecoveryMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.secret_key,
        session_cookie=settings.session_cookie,
        https_only=settings.environment == "production",
    )
    app.add_middleware(StructuredLoggingMiddleware)

    app.include_router(health.router)
    app.include_router(tenants.router, prefix="/admin/tenants")
    app.include_router(dashboard.router)

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    return app


def configure_logging() -> None:
    setup_structured_logging(
        log_level="DEBUG" if settings.debug else "INFO",
        json_format=settings.environment == "production",
    )
