"""
FastAPI dependencies shared by the routers.
"""

import secrets
from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from orgtenancy.config import settings
from orgtenancy.models.tenant import Tenant
from orgtenancy.provisioning.search import TenantSearchIndexManager
from orgtenancy.services.connection_manager import TenantConnection
from orgtenancy.workers.jobs import enqueue_tenant_provisioning


def get_current_tenant(request: Request) -> Tenant:
    """The tenant TenantMiddleware resolved; only valid on tenant hosts."""
    tenant: Tenant | None = getattr(request.state, "tenant", None)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return tenant


def get_tenant_connection(request: Request) -> TenantConnection:
    connection: TenantConnection | None = getattr(request.state, "tenant_connection", None)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    return connection


async def get_tenant_db(
    connection: TenantConnection = Depends(get_tenant_connection),
) -> AsyncGenerator[AsyncSession, None]:
    async with connection.session() as db:
        yield db


async def require_admin_token(x_admin_token: str | None = Header(default=None)) -> None:
    if not settings.admin_api_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API is disabled")
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.admin_api_token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


def get_enqueuer():
    return enqueue_tenant_provisioning


def get_search_manager() -> TenantSearchIndexManager:
    return TenantSearchIndexManager()
