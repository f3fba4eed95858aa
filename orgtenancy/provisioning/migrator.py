"""
Tenant schema migrations

Runs the Alembic script directory shipped in orgtenancy/tenant_migrations
against a tenant connection. The central database has its own migrations in
the project's alembic/ directory and is never touched here.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Connection

from orgtenancy.services.connection_manager import TenantConnection

logger = logging.getLogger(__name__)

TENANT_MIGRATIONS_PATH = Path(__file__).resolve().parent.parent / "tenant_migrations"


@dataclass
class MigrationResult:
    exit_status: int
    output: str

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class SchemaMigrator:
    def __init__(self, script_location: str | Path = TENANT_MIGRATIONS_PATH, revision: str = "head"):
        self.script_location = Path(script_location)
        self.revision = revision

    def _config(self, connection: Connection, buffer: io.StringIO) -> Config:
        cfg = Config(stdout=buffer)
        cfg.set_main_option("script_location", str(self.script_location))
        cfg.attributes["connection"] = connection
        return cfg

    def _upgrade(self, connection: Connection, buffer: io.StringIO) -> None:
        command.upgrade(self._config(connection, buffer), self.revision)

    async def migrate(self, connection: TenantConnection) -> MigrationResult:
        """Upgrade the tenant schema; failures are reported through the exit status."""
        buffer = io.StringIO()
        logger.info(
            "Running tenant migrations: tenant_id=%s database=%s path=%s",
            connection.tenant_id,
            connection.database,
            self.script_location,
        )
        try:
            async with connection.engine.begin() as conn:
                await conn.run_sync(self._upgrade, buffer)
        except Exception as e:
            logger.error("Tenant migrations failed: tenant_id=%s error=%s", connection.tenant_id, e)
            output = buffer.getvalue()
            return MigrationResult(exit_status=1, output=f"{output}{type(e).__name__}: {e}")

        output = buffer.getvalue()
        logger.info("Migration output: %s", output.strip() or "<none>")
        return MigrationResult(exit_status=0, output=output)
