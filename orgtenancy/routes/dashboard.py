"""
Tenant dashboard (tenant domains only)

DomainGuard keeps /dashboard off the central domain; here the request has
already been bound to a provisioned tenant.
"""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from orgtenancy.deps import get_current_tenant, get_tenant_db
from orgtenancy.models.tenant import Tenant
from orgtenancy.models.user import User

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard")
async def dashboard(
    tenant: Tenant = Depends(get_current_tenant),
    db: AsyncSession = Depends(get_tenant_db),
) -> dict:
    users = await db.execute(select(func.count(User.id)))
    return {
        "tenant": {
            "id": tenant.id,
            "name": tenant.name,
            "subdomain": tenant.subdomain,
            "provisioned_at": tenant.provisioned_at.isoformat() if tenant.provisioned_at else None,
        },
        "search_prefix": tenant.search_prefix,
        "users": int(users.scalar_one()),
    }
