"""Create tenants and domains tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-03-02 10:12:41.508113

"""

from collections.abc import Sequence
from typing import Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subdomain", sa.String(63), nullable=False),
        sa.Column("database", sa.String(128), nullable=True),
        sa.Column("database_user", sa.String(255), nullable=True),
        sa.Column("database_password", sa.Text(), nullable=True),
        sa.Column("provisioning_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("provisioning_error", sa.Text(), nullable=True),
        sa.Column("provisioned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("database"),
    )
    op.create_index(op.f("ix_tenants_id"), "tenants", ["id"], unique=False)
    op.create_index(op.f("ix_tenants_subdomain"), "tenants", ["subdomain"], unique=True)
    op.create_index("idx_tenant_provisioning_status", "tenants", ["provisioning_status"], unique=False)

    op.create_table(
        "domains",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("domain", sa.String(253), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_domains_id"), "domains", ["id"], unique=False)
    # One row per host across all tenants
    op.create_index(op.f("ix_domains_domain"), "domains", ["domain"], unique=True)
    op.create_index(op.f("ix_domains_tenant_id"), "domains", ["tenant_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_domains_tenant_id"), table_name="domains")
    op.drop_index(op.f("ix_domains_domain"), table_name="domains")
    op.drop_index(op.f("ix_domains_id"), table_name="domains")
    op.drop_table("domains")
    op.drop_index("idx_tenant_provisioning_status", table_name="tenants")
    op.drop_index(op.f("ix_tenants_subdomain"), table_name="tenants")
    op.drop_index(op.f("ix_tenants_id"), table_name="tenants")
    op.drop_table("tenants")
