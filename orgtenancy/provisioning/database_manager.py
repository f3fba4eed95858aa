"""
Tenant database provisioning (PostgreSQL)

Creates one database per tenant plus a login role that owns only that
database. The role has no server-wide privileges and PUBLIC loses CONNECT on
the tenant database, so the credential cannot reach any other tenant.

Every statement is guarded by an existence check, which makes
create_database() safe to call again after a partially failed attempt. An
existing role is only reused when the tenant already records it and it owns
no other database.
"""

import logging
import re
import secrets
from dataclasses import dataclass, field

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from orgtenancy.config import settings
from orgtenancy.exceptions import DatabaseProvisioningError
from orgtenancy.models.tenant import Tenant
from orgtenancy.utils.crypto import decrypt_secret

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
_PASSWORD = re.compile(r"^[A-Za-z0-9]{16,128}$")


@dataclass
class DatabaseCredentials:
    database: str
    username: str
    password: str = field(repr=False)
    created_database: bool = False
    created_user: bool = False


def generate_password() -> str:
    return secrets.token_hex(16)


def build_database_user(tenant: Tenant) -> str:
    return tenant.default_database_user()


def _quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise DatabaseProvisioningError(f"Unsafe database identifier: {name!r}", database=name)
    return f'"{name}"'


def _quote_password(password: str) -> str:
    if not _PASSWORD.match(password):
        raise DatabaseProvisioningError("Generated database password has an unexpected format")
    return f"'{password}'"


class TenantDatabaseManager:
    """Creates tenant databases and least-privilege credentials."""

    def __init__(self, server_url: str | URL | None = None, engine: AsyncEngine | None = None):
        self._server_url = make_url(server_url or settings.tenant_database_url or settings.database_url)
        self._engine = engine

    def _admin_engine(self) -> AsyncEngine:
        # CREATE DATABASE cannot run inside a transaction block.
        if self._engine is None:
            self._engine = create_async_engine(self._server_url, isolation_level="AUTOCOMMIT", pool_pre_ping=True)
        return self._engine

    async def create_database(self, tenant: Tenant) -> DatabaseCredentials:
        database = tenant.database or tenant.default_database_name(
            settings.tenant_database_prefix, settings.tenant_database_suffix
        )
        username = tenant.database_username or build_database_user(tenant)
        quoted_db = _quote_identifier(database)
        quoted_user = _quote_identifier(username)

        # Reuse the stored credential so pooled tenant connections stay valid across retries.
        password = decrypt_secret(tenant.database_password) if tenant.database_password else generate_password()
        quoted_password = _quote_password(password)

        created_user = created_database = False
        try:
            async with self._admin_engine().connect() as conn:
                if await self._role_exists(conn, username):
                    await self._check_role_belongs_to(conn, tenant, username, database)
                    logger.info("Tenant database role already exists: %s", username)
                    await conn.execute(text(f"ALTER ROLE {quoted_user} WITH LOGIN PASSWORD {quoted_password}"))
                else:
                    await conn.execute(
                        text(
                            f"CREATE ROLE {quoted_user} WITH LOGIN PASSWORD {quoted_password} "
                            "NOSUPERUSER NOCREATEDB NOCREATEROLE NOINHERIT"
                        )
                    )
                    created_user = True

                if await self._database_exists(conn, database):
                    logger.info("Tenant database already exists: %s", database)
                    await conn.execute(text(f"ALTER DATABASE {quoted_db} OWNER TO {quoted_user}"))
                else:
                    await conn.execute(text(f"CREATE DATABASE {quoted_db} OWNER {quoted_user}"))
                    created_database = True

                await conn.execute(text(f"REVOKE ALL ON DATABASE {quoted_db} FROM PUBLIC"))
                await conn.execute(text(f"GRANT CONNECT, TEMPORARY ON DATABASE {quoted_db} TO {quoted_user}"))
        except DatabaseProvisioningError:
            raise
        except Exception as e:
            raise DatabaseProvisioningError(f"Failed to create tenant database: {e}", database=database) from e

        logger.info(
            "Tenant database ready: tenant_id=%s database=%s user=%s created_database=%s created_user=%s",
            tenant.id,
            database,
            username,
            created_database,
            created_user,
        )
        return DatabaseCredentials(
            database=database,
            username=username,
            password=password,
            created_database=created_database,
            created_user=created_user,
        )

    @staticmethod
    async def _check_role_belongs_to(conn: AsyncConnection, tenant: Tenant, username: str, database: str) -> None:
        """
        Refuse to take over a role this tenant did not create.

        Raises:
            DatabaseProvisioningError: the tenant never recorded ``username``, or the
                role already owns another database
        """
        if tenant.database_username != username:
            raise DatabaseProvisioningError(
                f"Database role {username!r} already exists and is not recorded for tenant {tenant.id}",
                database=database,
            )
        result = await conn.execute(
            text(
                "SELECT d.datname FROM pg_database d JOIN pg_roles r ON d.datdba = r.oid "
                "WHERE r.rolname = :name AND d.datname <> :database"
            ),
            {"name": username, "database": database},
        )
        other = result.scalar()
        if other is not None:
            raise DatabaseProvisioningError(
                f"Database role {username!r} already owns database {other!r}",
                database=database,
            )

    @staticmethod
    async def _role_exists(conn: AsyncConnection, username: str) -> bool:
        result = await conn.execute(text("SELECT 1 FROM pg_roles WHERE rolname = :name"), {"name": username})
        return result.scalar() is not None

    @staticmethod
    async def _database_exists(conn: AsyncConnection, database: str) -> bool:
        result = await conn.execute(text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": database})
        return result.scalar() is not None

    async def dispose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
