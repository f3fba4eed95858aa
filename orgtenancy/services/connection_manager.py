"""
Tenant database connections

Each tenant database gets its own small pooled AsyncEngine, created on first
use and purged when the tenant's credentials change. At most
``tenant_engine_cache_size`` engines stay open; the least recently used one
is disposed when another tenant needs a slot. Callers receive an explicit
TenantConnection handle; the central engine in orgtenancy.database is never
repointed at a tenant database.

The handle bound to the current request is kept in a ContextVar so code deep
in a request can reach it without threading it through every call. The
middleware resets it when the request ends, so a reused worker never sees the
previous request's tenant.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from orgtenancy.config import settings
from orgtenancy.models.tenant import Tenant
from orgtenancy.utils.crypto import decrypt_secret

logger = logging.getLogger(__name__)


@dataclass
class TenantConnection:
    """Request- or job-scoped handle to one tenant's database and search namespace."""

    tenant_id: int
    subdomain: str
    database: str
    engine: AsyncEngine
    search_prefix: str
    name: str = "tenant"
    session_factory: async_sessionmaker = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    def session(self) -> AsyncSession:
        return self.session_factory()


_current_connection: ContextVar[TenantConnection | None] = ContextVar("current_tenant_connection", default=None)


def get_current_connection() -> TenantConnection | None:
    return _current_connection.get()


def bind_connection(connection: TenantConnection | None) -> Token:
    return _current_connection.set(connection)


def reset_connection(token: Token) -> None:
    _current_connection.reset(token)


class TenantConnectionManager:
    """Builds and caches per-tenant engines."""

    def __init__(
        self,
        base_url: str | URL | None = None,
        url_factory: Callable[[Tenant], URL] | None = None,
        engine_options: dict[str, Any] | None = None,
        connection_name: str | None = None,
        max_engines: int | None = None,
    ):
        self._base_url = make_url(base_url or settings.tenant_database_url or settings.database_url)
        self._url_factory = url_factory or self.url_for
        self._engine_options = engine_options if engine_options is not None else {
            "pool_pre_ping": True,
            "pool_recycle": 1800,
            "pool_size": settings.tenant_pool_size,
            "max_overflow": settings.tenant_max_overflow,
        }
        self.connection_name = connection_name or settings.tenant_connection
        self.max_engines = max_engines or settings.tenant_engine_cache_size
        self._engines: OrderedDict[str, AsyncEngine] = OrderedDict()

    def database_name(self, tenant: Tenant) -> str:
        return tenant.database or tenant.default_database_name(
            settings.tenant_database_prefix, settings.tenant_database_suffix
        )

    def url_for(self, tenant: Tenant) -> URL:
        url = self._base_url.set(database=self.database_name(tenant))
        if tenant.database_username and tenant.database_password:
            url = url.set(username=tenant.database_username, password=decrypt_secret(tenant.database_password))
        return url

    async def connect(self, tenant: Tenant) -> TenantConnection:
        database = self.database_name(tenant)
        url = self._url_factory(tenant)

        engine = self._engines.get(database)
        if engine is not None and engine.url != url:
            logger.info("Tenant credentials changed, purging pool: tenant_id=%s database=%s", tenant.id, database)
            await self.purge(database)
            engine = None

        if engine is None:
            await self._evict(keep=self.max_engines - 1)
            engine = create_async_engine(url, **self._engine_options)
            self._engines[database] = engine
            logger.debug("Created engine for tenant database %s", database)
        else:
            self._engines.move_to_end(database)

        return TenantConnection(
            tenant_id=tenant.id,
            subdomain=tenant.subdomain,
            database=database,
            engine=engine,
            search_prefix=tenant.search_prefix,
            name=self.connection_name,
        )

    async def purge(self, database: str) -> None:
        engine = self._engines.pop(database, None)
        if engine is not None:
            await engine.dispose()

    async def _evict(self, keep: int) -> None:
        while len(self._engines) > max(keep, 0):
            database, engine = self._engines.popitem(last=False)
            logger.info("Disposing least recently used tenant engine: database=%s", database)
            await engine.dispose()

    @property
    def cached_databases(self) -> list[str]:
        return list(self._engines)

    async def dispose_all(self) -> None:
        for database in list(self._engines):
            await self.purge(database)


connection_manager = TenantConnectionManager()
