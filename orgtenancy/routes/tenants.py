"""
Tenant Administration Routes (central domain only, X-Admin-Token)

POST   /admin/tenants                    → create tenant (pending) and enqueue provisioning
GET    /admin/tenants                    → list tenants
GET    /admin/tenants/{id}               → tenant detail with progress
POST   /admin/tenants/{id}/provision     → enqueue again (re-queues a failed tenant)
POST   /admin/tenants/{id}/suspend       → suspend a provisioned tenant (terminal)
GET    /admin/tenants/{id}/search-stats  → document counts of the tenant's indexes
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from orgtenancy.database import get_db
from orgtenancy.deps import get_enqueuer, get_search_manager, require_admin_token
from orgtenancy.events import TenantCreated, dispatcher
from orgtenancy.exceptions import InvalidStatusTransitionError
from orgtenancy.models.tenant import ProvisioningStatus, Tenant
from orgtenancy.provisioning.admin import AdminSeed
from orgtenancy.provisioning.search import TenantSearchIndexManager
from orgtenancy.services.tenant_service import (
    create_tenant,
    get_tenant_by_id,
    list_domains,
    list_tenants,
    requeue_tenant,
    suspend_tenant,
)

router = APIRouter(tags=["Tenants"], dependencies=[Depends(require_admin_token)])
logger = logging.getLogger(__name__)


# ============================================================================
# Schemas
# ============================================================================


class TenantCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    subdomain: str = Field(min_length=1, max_length=63)
    admin_name: str = "Admin"
    admin_email: str | None = Field(default=None, max_length=255)
    admin_password: str | None = Field(default=None, min_length=8)
    custom_domains: list[str] = []


class TenantSuspend(BaseModel):
    reason: str = ""


class TenantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    subdomain: str
    database: str | None
    provisioning_status: str
    provisioning_error: str | None
    provisioned_at: datetime | None
    is_active: bool
    domains: list[str] = []
    admin: dict[str, Any] | None = None
    progress: dict[str, Any] | None = None
    created_at: datetime | None = None
    job_id: str | None = None

    @classmethod
    def from_tenant(cls, tenant: Tenant, domains: list[str] | None = None, job_id: str | None = None) -> "TenantResponse":
        return cls(
            id=tenant.id,
            name=tenant.name,
            subdomain=tenant.subdomain,
            database=tenant.database,
            provisioning_status=tenant.provisioning_status,
            provisioning_error=tenant.provisioning_error,
            provisioned_at=tenant.provisioned_at,
            is_active=tenant.is_active,
            domains=domains or [],
            admin=tenant.admin_data,
            progress=(tenant.data or {}).get("provisioning"),
            created_at=tenant.created_at,
            job_id=job_id,
        )


async def _get_or_404(tenant_id: int, db: AsyncSession) -> Tenant:
    tenant = await get_tenant_by_id(tenant_id, db)
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return tenant


async def _enqueue(enqueue, tenant: Tenant, seed: AdminSeed | None = None) -> str | None:
    try:
        return await enqueue(tenant.id, tenant.subdomain, seed)
    except (RedisError, OSError) as e:
        # The tenant stays pending; POST /{id}/provision queues it again.
        logger.error("Could not enqueue provisioning for tenant_id=%s: %s", tenant.id, e)
        return None


# ============================================================================
# Routes
# ============================================================================


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
async def create_tenant_route(
    payload: TenantCreate,
    db: AsyncSession = Depends(get_db),
    enqueue=Depends(get_enqueuer),
) -> TenantResponse:
    tenant = await create_tenant(
        name=payload.name,
        subdomain=payload.subdomain,
        db=db,
        custom_domains=payload.custom_domains,
    )

    await dispatcher.dispatch(TenantCreated(tenant_id=tenant.id, subdomain=tenant.subdomain))
    seed = AdminSeed(name=payload.admin_name, email=payload.admin_email, password=payload.admin_password)
    job_id = await _enqueue(enqueue, tenant, seed)
    return TenantResponse.from_tenant(tenant, await list_domains(tenant.id, db), job_id=job_id)


@router.get("", response_model=list[TenantResponse])
async def list_tenants_route(
    skip: int = 0,
    limit: int = 20,
    status_filter: ProvisioningStatus | None = None,
    db: AsyncSession = Depends(get_db),
) -> list[TenantResponse]:
    tenants = await list_tenants(db, skip=skip, limit=limit, status=status_filter.value if status_filter else None)
    return [TenantResponse.from_tenant(t, await list_domains(t.id, db)) for t in tenants]


@router.get("/{tenant_id}", response_model=TenantResponse)
async def get_tenant_route(tenant_id: int, db: AsyncSession = Depends(get_db)) -> TenantResponse:
    tenant = await _get_or_404(tenant_id, db)
    return TenantResponse.from_tenant(tenant, await list_domains(tenant.id, db))


@router.post("/{tenant_id}/provision", response_model=TenantResponse, status_code=status.HTTP_202_ACCEPTED)
async def provision_tenant_route(
    tenant_id: int,
    db: AsyncSession = Depends(get_db),
    enqueue=Depends(get_enqueuer),
) -> TenantResponse:
    """Queue provisioning for a pending tenant, re-queueing it first when it failed."""
    tenant = await _get_or_404(tenant_id, db)
    if tenant.status is ProvisioningStatus.failed:
        tenant = await requeue_tenant(tenant_id, db)
    elif tenant.status is not ProvisioningStatus.pending:
        raise InvalidStatusTransitionError(tenant.provisioning_status, ProvisioningStatus.provisioning.value, tenant_id)
    seed = AdminSeed(email=(tenant.admin_data or {}).get("email"))
    job_id = await _enqueue(enqueue, tenant, seed)
    return TenantResponse.from_tenant(tenant, await list_domains(tenant.id, db), job_id=job_id)


@router.post("/{tenant_id}/suspend", response_model=TenantResponse)
async def suspend_tenant_route(
    tenant_id: int,
    payload: TenantSuspend | None = None,
    db: AsyncSession = Depends(get_db),
) -> TenantResponse:
    tenant = await suspend_tenant(tenant_id, db, reason=payload.reason if payload else "")
    if tenant is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return TenantResponse.from_tenant(tenant, await list_domains(tenant.id, db))


@router.get("/{tenant_id}/search-stats")
async def search_stats_route(
    tenant_id: int,
    db: AsyncSession = Depends(get_db),
    search: TenantSearchIndexManager = Depends(get_search_manager),
) -> dict[str, Any]:
    tenant = await _get_or_404(tenant_id, db)
    return {"tenant_id": tenant.id, "prefix": tenant.search_prefix, "indexes": await search.get_index_stats(tenant)}
