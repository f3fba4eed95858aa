"""
Tenant Service

Async operations on the tenant directory (central database).
All functions accept an injected AsyncSession; TenantDirectory wraps them for
the request path, which opens its own short-lived central session.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgtenancy.config import settings
from orgtenancy.exceptions import DuplicateTenantError, InvalidDomainError, InvalidSubdomainError
from orgtenancy.models.tenant import Domain, ProvisioningStatus, Tenant
from orgtenancy.utils.hosts import is_valid_domain, is_valid_subdomain, normalize_host

logger = logging.getLogger(__name__)


async def create_tenant(
    name: str,
    subdomain: str,
    db: AsyncSession,
    data: dict | None = None,
    custom_domains: list[str] | None = None,
) -> Tenant:
    """
    Create a new tenant in `pending`; provisioning is enqueued separately.

    Custom domains are validated and checked for availability before anything
    is written, and are committed together with the tenant.

    Raises:
        InvalidSubdomainError: the subdomain is not a DNS label
        InvalidDomainError: a custom domain is malformed or central
        DuplicateTenantError: the subdomain or a custom domain is taken
    """
    subdomain = subdomain.strip().lower()
    if not is_valid_subdomain(subdomain):
        raise InvalidSubdomainError(subdomain)
    if await get_tenant_by_subdomain(subdomain, db) is not None:
        raise DuplicateTenantError("subdomain", subdomain)
    hosts = await _check_custom_domains(custom_domains or [], db)

    tenant = Tenant(
        name=name,
        subdomain=subdomain,
        provisioning_status=ProvisioningStatus.pending.value,
        data=data or {},
        domains=[Domain(domain=host) for host in hosts],
    )
    tenant.database = tenant.default_database_name(settings.tenant_database_prefix, settings.tenant_database_suffix)
    # Provisioning only reuses an existing role when it is the one recorded here.
    tenant.database_username = tenant.default_database_user()
    db.add(tenant)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateTenantError("subdomain", subdomain) from e
    await db.refresh(tenant)
    logger.info("Tenant created: id=%d subdomain=%s domains=%s", tenant.id, tenant.subdomain, hosts)
    return tenant


async def _check_custom_domains(domains: list[str], db: AsyncSession) -> list[str]:
    hosts: list[str] = []
    for raw in domains:
        host = normalize_host(raw)
        if not is_valid_domain(host):
            raise InvalidDomainError(raw)
        if host in settings.central_domains:
            raise InvalidDomainError(host, "is a central domain")
        if host not in hosts:
            hosts.append(host)
    if hosts:
        result = await db.execute(select(Domain.domain).where(Domain.domain.in_(hosts)))
        taken = result.scalars().first()
        if taken is not None:
            raise DuplicateTenantError("domain", taken)
    return hosts


async def get_tenant_by_id(tenant_id: int, db: AsyncSession) -> Tenant | None:
    """Return a Tenant by primary key, or None if not found."""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id))
    return result.scalars().first()


async def get_tenant_for_update(tenant_id: int, db: AsyncSession) -> Tenant | None:
    """Return a Tenant with its row locked until the transaction ends."""
    result = await db.execute(select(Tenant).where(Tenant.id == tenant_id).with_for_update())
    return result.scalars().first()


async def get_tenant_by_subdomain(subdomain: str, db: AsyncSession) -> Tenant | None:
    """Return a Tenant by subdomain, or None if not found."""
    result = await db.execute(select(Tenant).where(Tenant.subdomain == subdomain))
    return result.scalars().first()


async def get_tenant_by_domain(domain: str, db: AsyncSession) -> Tenant | None:
    """Return the Tenant owning a registered domain, or None if not found."""
    result = await db.execute(
        select(Tenant).join(Domain, Domain.tenant_id == Tenant.id).where(Domain.domain == normalize_host(domain))
    )
    return result.scalars().first()


async def list_tenants(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 20,
    status: str | None = None,
) -> list[Tenant]:
    """Return a paginated list of tenants, optionally filtered by provisioning status."""
    query = select(Tenant).order_by(Tenant.id)
    if status:
        query = query.where(Tenant.provisioning_status == status)
    result = await db.execute(query.offset(skip).limit(limit))
    return list(result.scalars().all())


async def count_domains(tenant_id: int, db: AsyncSession) -> int:
    result = await db.execute(select(func.count(Domain.id)).where(Domain.tenant_id == tenant_id))
    return int(result.scalar_one())


async def list_domains(tenant_id: int, db: AsyncSession) -> list[str]:
    result = await db.execute(select(Domain.domain).where(Domain.tenant_id == tenant_id).order_by(Domain.id))
    return list(result.scalars().all())


async def register_domain(tenant: Tenant, host: str, db: AsyncSession) -> tuple[Domain, bool]:
    """
    Attach `host` to the tenant.

    Returns (domain, created). An existing row for the same tenant is reused;
    a host owned by another tenant raises DuplicateTenantError.
    """
    host = normalize_host(host)
    result = await db.execute(select(Domain).where(Domain.domain == host))
    existing = result.scalars().first()
    if existing is not None:
        if existing.tenant_id != tenant.id:
            raise DuplicateTenantError("domain", host)
        return existing, False

    domain = Domain(domain=host, tenant_id=tenant.id)
    db.add(domain)
    await db.commit()
    await db.refresh(domain)
    logger.info("Domain registered: tenant_id=%d domain=%s", tenant.id, host)
    return domain, True


async def requeue_tenant(tenant_id: int, db: AsyncSession) -> Tenant | None:
    """
    Move a failed tenant back to `pending` so provisioning can be enqueued again.

    Returns None if the tenant does not exist.
    """
    tenant = await get_tenant_for_update(tenant_id, db)
    if tenant is None:
        return None
    tenant.requeue()
    await db.commit()
    await db.refresh(tenant)
    logger.info("Tenant re-queued: id=%d subdomain=%s", tenant.id, tenant.subdomain)
    return tenant


async def suspend_tenant(tenant_id: int, db: AsyncSession, reason: str = "") -> Tenant | None:
    """
    Suspend a provisioned tenant. Suspension is terminal.

    Returns None if the tenant does not exist.
    """
    tenant = await get_tenant_for_update(tenant_id, db)
    if tenant is None:
        return None
    tenant.suspend(reason)
    await db.commit()
    await db.refresh(tenant)
    logger.info("Tenant suspended: id=%d subdomain=%s", tenant.id, tenant.subdomain)
    return tenant


class TenantDirectory:
    """Read-only tenant lookups used while resolving a request host."""

    def __init__(self, session_factory: async_sessionmaker | None = None):
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        if self._session_factory is not None:
            return self._session_factory()
        # Looked up at call time so tests can swap the central session maker.
        from orgtenancy import database

        return database.AsyncSessionLocal()

    async def find_by_subdomain(self, subdomain: str) -> Tenant | None:
        async with self._session() as db:
            return await get_tenant_by_subdomain(subdomain, db)

    async def find_by_domain(self, host: str) -> Tenant | None:
        async with self._session() as db:
            return await get_tenant_by_domain(host, db)
