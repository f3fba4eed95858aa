"""
Tenant super-administrator provisioning

Exactly one super admin per tenant. The check for an existing super admin
runs before any insert, so a retried provisioning run skips this step
instead of tripping over a unique constraint.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone

from passlib.context import CryptContext
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgtenancy.config import settings
from orgtenancy.exceptions import AdminProvisioningError
from orgtenancy.models.user import Role, RoleEnum, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


@dataclass
class AdminSeed:
    name: str = "Admin"
    email: str | None = None
    password: str | None = field(default=None, repr=False)

    def resolved_email(self, subdomain: str) -> str:
        return (self.email or f"admin@{subdomain}.test").strip().lower()

    def to_job_payload(self) -> dict:
        return {"name": self.name, "email": self.email, "password": self.password}

    @classmethod
    def from_job_payload(cls, payload: dict | None) -> "AdminSeed":
        payload = payload or {}
        return cls(
            name=payload.get("name") or "Admin",
            email=payload.get("email"),
            password=payload.get("password"),
        )


@dataclass
class AdminResult:
    id: int | None
    email: str | None
    name: str | None
    created: bool
    skipped: bool = False
    generated_password: str | None = field(default=None, repr=False)

    def audit_record(self) -> dict:
        return {"id": self.id, "email": self.email, "name": self.name}


class AdminProvisioner:
    """Creates or adopts the tenant's super-admin account inside the tenant database."""

    async def count_super_admins(self, db: AsyncSession) -> int:
        result = await db.execute(select(func.count(User.id)).where(User.role == RoleEnum.super_admin.value))
        return int(result.scalar_one())

    async def find_by_email(self, db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def provision(self, db: AsyncSession, seed: AdminSeed, subdomain: str, tenant_id: int | None = None) -> AdminResult:
        existing = await self.count_super_admins(db)
        if existing > 0:
            logger.info(
                "Super admin already exists, skipping creation: tenant_id=%s count=%d",
                tenant_id,
                existing,
            )
            return AdminResult(id=None, email=None, name=None, created=False, skipped=True)

        email = seed.resolved_email(subdomain)
        user = await self.find_by_email(db, email)
        if user is not None:
            self._adopt(user, email)
            created = False
            generated = None
        else:
            password = seed.password or secrets.token_hex(8)
            generated = None if seed.password else password
            user = User(
                name=seed.name or "Admin",
                email=email,
                hashed_password=hash_password(password),
                role=RoleEnum.super_admin.value,
                status="active",
                locale=settings.default_locale,
                timezone=settings.default_timezone,
                email_verified_at=datetime.now(timezone.utc),
            )
            db.add(user)
            try:
                await db.flush()
                created = True
            except IntegrityError:
                # Created concurrently under the same email; apply the adoption rule to it.
                await db.rollback()
                user = await self.find_by_email(db, email)
                if user is None:
                    raise
                self._adopt(user, email)
                created = False
                generated = None

        await self._attach_role(db, user, tenant_id)
        await db.commit()

        logger.info(
            "Super admin %s: tenant_id=%s admin_id=%s email=%s",
            "created" if created else "adopted",
            tenant_id,
            user.id,
            user.email,
        )
        return AdminResult(id=user.id, email=user.email, name=user.name, created=created, generated_password=generated)

    def _adopt(self, user: User, email: str) -> None:
        """Reuse an existing account only if it is active; promote it to super admin."""
        if not user.is_active:
            raise AdminProvisioningError(
                f"An inactive account ({user.status}) already uses {email}; refusing to adopt it as super admin",
                email=email,
            )
        user.role = RoleEnum.super_admin.value
        logger.info("Adopting existing account as super admin: user_id=%s email=%s", user.id, email)

    async def _attach_role(self, db: AsyncSession, user: User, tenant_id: int | None) -> None:
        result = await db.execute(select(Role).where(Role.name == RoleEnum.super_admin.value, Role.guard_name == "web"))
        role = result.scalars().first()
        if role is None:
            logger.warning("super_admin role not found, roles seeder may be disabled: tenant_id=%s", tenant_id)
            return
        if user.id is not None:
            await db.refresh(user, attribute_names=["roles"])
        if all(r.id != role.id for r in user.roles):
            user.roles.append(role)
