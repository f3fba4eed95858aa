"""
Tenant Resolution Middleware

Resolves the tenant from the request host and binds its database connection
for the duration of the request:

  DOMAIN strategy
    1. {label}.{central domain}  -> tenant with subdomain == label
    2. registered custom domain  -> tenant owning that Domain row
  SUBDOMAIN strategy
    3. strip a central domain suffix, validate the label, look it up

A host equal to a configured central domain is always central and never
resolves to a tenant. Unknown hosts get 404, tenants that are not
provisioned get 503. Nothing is cached between requests.

Attributes set on request.state:
    tenant            (Tenant | None)
    tenant_id         (int | None)
    tenant_connection (TenantConnection | None)
    is_central        (bool)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.base import BaseHTTPMiddleware

from orgtenancy.config import settings
from orgtenancy.exceptions import TenantInactiveError, TenantNotFoundError
from orgtenancy.middleware.logging import client_ip_for, tenant_id_var
from orgtenancy.services.connection_manager import (
    TenantConnection,
    TenantConnectionManager,
    bind_connection,
    connection_manager,
    reset_connection,
)
from orgtenancy.services.tenant_service import TenantDirectory
from orgtenancy.utils.hosts import extract_subdomain, normalize_host

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import Request
    from starlette.responses import Response
    from starlette.types import ASGIApp

    from orgtenancy.models.tenant import Tenant

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

# Seconds a client should wait before retrying a tenant that is still being set up.
RETRY_AFTER_SECONDS = 30


class ResolutionStrategy(str, enum.Enum):
    DOMAIN = "domain"
    SUBDOMAIN = "subdomain"


@dataclass
class Resolution:
    host: str
    tenant: Tenant | None = None
    connection: TenantConnection | None = None

    @property
    def is_central(self) -> bool:
        return self.tenant is None


class TenantResolver:
    def __init__(
        self,
        central_domains: list[str] | None = None,
        strategy: ResolutionStrategy | str | None = None,
        directory: TenantDirectory | None = None,
        connections: TenantConnectionManager | None = None,
    ):
        domains = settings.central_domains if central_domains is None else central_domains
        self.central_domains = [normalize_host(d) for d in domains if d]
        self.strategy = ResolutionStrategy(strategy or settings.resolution_strategy)
        self.directory = directory or TenantDirectory()
        self.connections = connections or connection_manager

    def is_central(self, host: str) -> bool:
        return normalize_host(host) in self.central_domains

    async def find_tenant(self, host: str) -> Tenant | None:
        for central in self.central_domains:
            label = extract_subdomain(host, central)
            if label is None:
                continue
            tenant = await self.directory.find_by_subdomain(label)
            if tenant is not None:
                return tenant

        if self.strategy is ResolutionStrategy.DOMAIN:
            return await self.directory.find_by_domain(host)
        return None

    async def resolve(self, host: str | None) -> Resolution:
        """
        Raises:
            TenantNotFoundError: the host is neither central nor a known tenant
            TenantInactiveError: the tenant exists but is not provisioned
        """
        host = normalize_host(host)
        if not host:
            raise TenantNotFoundError("")
        if self.is_central(host):
            return Resolution(host=host)

        tenant = await self.find_tenant(host)
        if tenant is None:
            raise TenantNotFoundError(host)
        if not tenant.is_active:
            raise TenantInactiveError(tenant.id, tenant.provisioning_status)

        connection = await self.connections.connect(tenant)
        return Resolution(host=host, tenant=tenant, connection=connection)


def wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "text/html" in accept and not request.url.path.startswith("/api")


def not_found_response(exc: TenantNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "tenant_not_found", "domain": exc.domain, "message": exc.message},
    )


def inactive_response(request: Request, exc: TenantInactiveError, tenant_name: str | None = None) -> Response:
    headers = {"Retry-After": str(RETRY_AFTER_SECONDS)} if exc.retryable else None
    if wants_html(request):
        return templates.TemplateResponse(
            request,
            "tenant_status.html",
            {
                "status": exc.tenant_status,
                "message": exc.message,
                "tenant_name": tenant_name,
                "retryable": exc.retryable,
                "retry_after": RETRY_AFTER_SECONDS,
            },
            status_code=exc.status_code,
            headers=headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "tenant_inactive",
            "tenant_id": exc.tenant_id,
            "status": exc.tenant_status,
            "message": exc.message,
        },
        headers=headers,
    )


class TenantMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        resolver: TenantResolver | None = None,
        exempt_paths: list[str] | None = None,
    ):
        super().__init__(app)
        self.resolver = resolver or TenantResolver()
        self.exempt_paths = set(exempt_paths if exempt_paths is not None else ["/health"])

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Always initialise state so downstream code can safely read it
        request.state.tenant = None
        request.state.tenant_id = None
        request.state.tenant_connection = None
        request.state.is_central = None

        if request.url.path in self.exempt_paths:
            return await call_next(request)

        host = request.headers.get("host", "")
        try:
            resolution = await self.resolver.resolve(host)
        except TenantNotFoundError as e:
            logger.warning(
                "Tenant resolution failed: domain=%s client_ip=%s path=%s",
                e.domain,
                client_ip_for(request),
                request.url.path,
            )
            return not_found_response(e)
        except TenantInactiveError as e:
            logger.info("Tenant not available: tenant_id=%s status=%s", e.tenant_id, e.tenant_status)
            return inactive_response(request, e)

        request.state.is_central = resolution.is_central
        if resolution.is_central:
            return await call_next(request)

        tenant = resolution.tenant
        request.state.tenant = tenant
        request.state.tenant_id = tenant.id
        request.state.tenant_connection = resolution.connection

        connection_token = bind_connection(resolution.connection)
        tenant_token = tenant_id_var.set(tenant.id)
        logger.debug("Resolved tenant_id=%d subdomain=%s host=%s", tenant.id, tenant.subdomain, resolution.host)
        try:
            return await call_next(request)
        finally:
            # The next request on this worker starts from nothing.
            tenant_id_var.reset(tenant_token)
            reset_connection(connection_token)
