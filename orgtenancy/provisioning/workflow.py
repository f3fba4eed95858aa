"""
Tenant provisioning workflow

Turns a pending tenant into a working environment:

    1. pending/failed -> provisioning (row lock, status guard)
    2. database + least-privilege credentials
    3. {subdomain}.{primary central domain} domain row
    4. tenant schema migrations
    5. reference data seeders
    6. super admin
    7. search indexes
    8. provisioning -> provisioned

Each step commits before the next one starts and is safe to run again, so a
retry after a partial failure resumes instead of duplicating work. Any error
in steps 2-7 marks the tenant failed and is re-raised for the job runner.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from orgtenancy.config import settings
from orgtenancy.events import EventDispatcher, TenantProvisioned, TenantProvisioningFailed, dispatcher
from orgtenancy.exceptions import ErrorCode, MigrationError, TenancyConfigurationError, TenancyError
from orgtenancy.models.tenant import Tenant
from orgtenancy.provisioning.admin import AdminProvisioner, AdminSeed
from orgtenancy.provisioning.database_manager import TenantDatabaseManager
from orgtenancy.provisioning.migrator import SchemaMigrator
from orgtenancy.provisioning.progress import ProvisioningProgress
from orgtenancy.provisioning.search import TenantSearchIndexManager
from orgtenancy.provisioning.seeders import ReferenceDataSeeder, SeedContext
from orgtenancy.services.connection_manager import TenantConnectionManager, connection_manager
from orgtenancy.services.tenant_service import get_tenant_by_id, get_tenant_for_update, register_domain
from orgtenancy.utils.crypto import encrypt_secret
from orgtenancy.utils.hosts import compose_host

logger = logging.getLogger(__name__)

# Output kept on the tenant when migrations fail; the full text goes to the log.
MIGRATION_OUTPUT_LIMIT = 2000


@dataclass
class ProvisioningResult:
    """Summary of a successful run, returned to the job and the inline script."""

    tenant_id: int
    subdomain: str
    database: str
    domain: str
    attempt: int = 1
    admin: dict[str, Any] | None = None
    admin_created: bool = False
    seeded: dict[str, int] = field(default_factory=dict)
    indexes: list[str] = field(default_factory=list)
    generated_admin_password: str | None = field(default=None, repr=False)


class TenantProvisioningWorkflow:
    """
    Orchestrates every provisioning step for one tenant.

    Collaborators are injected so each step can be replaced in tests; the
    defaults talk to PostgreSQL, Alembic and Meilisearch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker | None = None,
        database_manager: TenantDatabaseManager | None = None,
        connections: TenantConnectionManager | None = None,
        migrator: SchemaMigrator | None = None,
        seeder: ReferenceDataSeeder | None = None,
        admin_provisioner: AdminProvisioner | None = None,
        search_manager: TenantSearchIndexManager | None = None,
        events: EventDispatcher | None = None,
    ):
        self._session_factory = session_factory
        self.database_manager = database_manager or TenantDatabaseManager()
        self.connections = connections or connection_manager
        self.migrator = migrator or SchemaMigrator()
        self.seeder = seeder or ReferenceDataSeeder()
        self.admin_provisioner = admin_provisioner or AdminProvisioner()
        self.search_manager = search_manager or TenantSearchIndexManager()
        self.events = events or dispatcher

    def _session(self) -> AsyncSession:
        if self._session_factory is not None:
            return self._session_factory()
        from orgtenancy import database

        return database.AsyncSessionLocal()

    async def provision(self, tenant_id: int, admin_seed: AdminSeed | None = None, attempt: int = 1) -> ProvisioningResult:
        """
        Provision a pending or failed tenant.

        Args:
            tenant_id: Central id of the tenant
            admin_seed: Super admin details; defaults are used for missing fields
            attempt: Job attempt number, recorded in the progress payload

        Returns:
            ProvisioningResult describing the finished environment

        Raises:
            InvalidStatusTransitionError: the tenant is neither pending nor failed
            TenancyError: the tenant does not exist (404)
            ProvisioningError: a step failed; the tenant is left failed
        """
        admin_seed = admin_seed or AdminSeed()
        progress = ProvisioningProgress(attempt=attempt)

        async with self._session() as db:
            tenant = await self._start(db, tenant_id, progress)
            subdomain = tenant.subdomain
            log_ctx = {"organization_id": tenant.id, "subdomain": subdomain, "attempt": attempt}
            logger.info("Tenant provisioning started: %s", log_ctx)

            try:
                result = await self._run_steps(db, tenant, admin_seed, progress, log_ctx)
            except Exception as e:
                error = str(e) or type(e).__name__
                logger.error("Tenant provisioning failed: %s error=%s", log_ctx, error)
                await self._record_failure(db, tenant_id, error, progress)
                await self.events.dispatch(TenantProvisioningFailed(tenant_id=tenant_id, subdomain=subdomain, error=error))
                raise

        logger.info("Tenant provisioning completed successfully: %s", log_ctx)
        await self.events.dispatch(TenantProvisioned(tenant_id=tenant_id, subdomain=subdomain, admin=result.admin))
        return result

    async def _start(self, db: AsyncSession, tenant_id: int, progress: ProvisioningProgress) -> Tenant:
        """Lock the tenant row and move it to provisioning."""
        tenant = await get_tenant_for_update(tenant_id, db)
        if tenant is None:
            raise TenancyError(
                f"Tenant {tenant_id} does not exist",
                status_code=404,
                details={"tenant_id": tenant_id},
                error_code=ErrorCode.RESOURCE_NOT_FOUND,
            )
        # Raises InvalidStatusTransitionError unless pending or failed.
        tenant.start_provisioning()
        self._advance(tenant, progress, "started")
        await db.commit()
        return tenant

    async def _run_steps(
        self,
        db: AsyncSession,
        tenant: Tenant,
        admin_seed: AdminSeed,
        progress: ProvisioningProgress,
        log_ctx: dict,
    ) -> ProvisioningResult:
        """Run steps 2-8, committing progress after each one."""
        # Step 2: database and credentials
        logger.info("Creating tenant database: %s database=%s", log_ctx, tenant.database)
        credentials = await self.database_manager.create_database(tenant)
        tenant.database = credentials.database
        tenant.database_username = credentials.username
        if not tenant.database_password:
            tenant.database_password = encrypt_secret(credentials.password)
        self._advance(tenant, progress, "database")
        await db.commit()

        # Step 3: domain
        central = settings.primary_central_domain
        if not central:
            raise TenancyConfigurationError("No central domain configured; cannot register tenant domain")
        host = compose_host(tenant.subdomain, central)
        _, created = await register_domain(tenant, host, db)
        if not created:
            logger.info("Tenant domain already exists: %s domain=%s", log_ctx, host)
        self._advance(tenant, progress, "domain")
        await db.commit()

        # Step 4: migrations, tenant connection only
        connection = await self.connections.connect(tenant)
        migration = await self.migrator.migrate(connection)
        if not migration.ok:
            logger.error("Migration output: %s", migration.output)
            raise MigrationError(
                f"Tenant migrations failed (exit status {migration.exit_status}): "
                f"{migration.output[-MIGRATION_OUTPUT_LIMIT:].strip()}",
                exit_status=migration.exit_status,
                output=migration.output,
            )
        self._advance(tenant, progress, "migrations")
        await db.commit()

        # Step 5: reference data, before the admin so roles exist
        context = SeedContext(
            tenant_id=tenant.id,
            subdomain=tenant.subdomain,
            locale=settings.default_locale,
            timezone=settings.default_timezone,
            currency=settings.default_currency,
        )
        seeded = await self.seeder.seed(connection.session_factory, context)
        self._advance(tenant, progress, "seed")
        await db.commit()

        # Step 6: super admin
        logger.info("Creating super admin user: %s admin_email=%s", log_ctx, admin_seed.email)
        async with connection.session() as tenant_db:
            admin = await self.admin_provisioner.provision(tenant_db, admin_seed, tenant.subdomain, tenant.id)
        if not admin.skipped:
            tenant.set_admin_data(admin.audit_record())
        self._advance(tenant, progress, "admin")
        await db.commit()

        # Step 7: search indexes
        logger.info("Setting up search indexes: %s prefix=%s", log_ctx, tenant.search_prefix)
        indexes = await self.search_manager.create_tenant_indexes(tenant)
        self._advance(tenant, progress, "search")
        await db.commit()

        # Step 8
        tenant.mark_provisioned()
        self._advance(tenant, progress, "completed")
        await db.commit()

        return ProvisioningResult(
            tenant_id=tenant.id,
            subdomain=tenant.subdomain,
            database=tenant.database,
            domain=host,
            attempt=progress.attempt,
            admin=tenant.admin_data,
            admin_created=admin.created,
            seeded=seeded,
            indexes=indexes,
            generated_admin_password=admin.generated_password,
        )

    async def _record_failure(self, db: AsyncSession, tenant_id: int, error: str, progress: ProvisioningProgress) -> None:
        """Mark the tenant failed and keep the last completed step for the next attempt."""
        await db.rollback()
        # Re-select to reload the instance expired by the rollback.
        tenant = await get_tenant_by_id(tenant_id, db)
        if tenant is None:
            return
        tenant.mark_failed(error)
        tenant.set_provisioning_progress({**progress.as_dict(), "last_completed_step": progress.step})
        await db.commit()

    @staticmethod
    def _advance(tenant: Tenant, progress: ProvisioningProgress, step: str) -> None:
        if progress.advance(step):
            tenant.set_provisioning_progress(progress.as_dict())
            progress.mark_persisted()
