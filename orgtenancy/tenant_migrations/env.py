"""Alembic environment for tenant databases.

Only runs on a connection handed over by SchemaMigrator through
``config.attributes["connection"]``; there is no URL to fall back to, so
these migrations can never land on the central database by accident.
"""

from alembic import context

import orgtenancy.models  # noqa: F401  registers tenant tables on TenantBase
from orgtenancy.database import TenantBase

config = context.config
target_metadata = TenantBase.metadata


def run_migrations_offline() -> None:
    """Emit SQL for a tenant schema without a database connection."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url") or "postgresql://",
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connection = config.attributes.get("connection")
    if connection is None:
        raise RuntimeError("Tenant migrations must be run through SchemaMigrator on a tenant connection")

    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
