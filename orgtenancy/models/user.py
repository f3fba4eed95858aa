"""
Tenant-scoped account models. These tables exist only inside a tenant's own
database and are created by the tenant migrations.
"""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Table, UniqueConstraint
from sqlalchemy.orm import relationship

from orgtenancy.database import TenantBase
from orgtenancy.models.tenant import utc_now


class RoleEnum(str, enum.Enum):
    super_admin = "super_admin"
    admin = "admin"
    manager = "manager"
    employee = "employee"


role_permissions = Table(
    "role_permissions",
    TenantBase.metadata,
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Integer, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

user_roles = Table(
    "user_roles",
    TenantBase.metadata,
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Integer, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(TenantBase):
    __tablename__ = "permissions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(150), nullable=False)
    guard_name = Column(String(50), nullable=False, default="web")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (UniqueConstraint("name", "guard_name", name="uq_permissions_name_guard"),)


class Role(TenantBase):
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    guard_name = Column(String(50), nullable=False, default="web")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    permissions = relationship("Permission", secondary=role_permissions, lazy="selectin")

    __table_args__ = (UniqueConstraint("name", "guard_name", name="uq_roles_name_guard"),)


class User(TenantBase):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default=RoleEnum.employee.value)
    status = Column(String(20), nullable=False, default="active")
    locale = Column(String(10), nullable=True)
    timezone = Column(String(64), nullable=True)
    email_verified_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    roles = relationship("Role", secondary=user_roles, lazy="selectin")

    @property
    def is_active(self) -> bool:
        return self.status == "active"
