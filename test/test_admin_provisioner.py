"""
Tests for tenant super-admin provisioning
"""

import pytest
from sqlalchemy import func, select

from orgtenancy.exceptions import AdminProvisioningError
from orgtenancy.models.user import User
from orgtenancy.provisioning.admin import AdminProvisioner, AdminSeed, hash_password, pwd_context
from orgtenancy.provisioning.seeders import ReferenceDataSeeder, SeedContext


@pytest.fixture
async def seeded_tenant_db(tenant_session_factory):
    await ReferenceDataSeeder(enabled=["roles_and_permissions"]).seed(
        tenant_session_factory, SeedContext(tenant_id=1, subdomain="acme")
    )
    return tenant_session_factory


async def add_user(factory, email: str, role: str = "employee", status: str = "active") -> int:
    async with factory() as db:
        user = User(name="Existing", email=email, hashed_password=hash_password("existing-pass"), role=role, status=status)
        db.add(user)
        await db.commit()
        return user.id


async def super_admin_count(factory) -> int:
    async with factory() as db:
        result = await db.execute(select(func.count(User.id)).where(User.role == "super_admin"))
        return int(result.scalar_one())


class TestAdminSeed:
    def test_default_email_uses_subdomain(self):
        assert AdminSeed().resolved_email("acme") == "admin@acme.test"

    def test_email_is_normalised(self):
        assert AdminSeed(email=" Ada@Acme.ORG ").resolved_email("acme") == "ada@acme.org"

    def test_job_payload_round_trip(self):
        seed = AdminSeed(name="Ada", email="ada@acme.org", password="s3cret-pass")
        assert AdminSeed.from_job_payload(seed.to_job_payload()) == seed

    def test_empty_payload_gives_defaults(self):
        assert AdminSeed.from_job_payload(None) == AdminSeed()

    def test_password_not_in_repr(self):
        assert "s3cret-pass" not in repr(AdminSeed(password="s3cret-pass"))


class TestAdminProvisioner:
    async def test_creates_super_admin(self, seeded_tenant_db):
        seed = AdminSeed(name="Ada", email="ada@acme.org", password="s3cret-pass")
        async with seeded_tenant_db() as db:
            result = await AdminProvisioner().provision(db, seed, "acme", tenant_id=1)

        assert result.created is True
        assert result.skipped is False
        assert result.generated_password is None
        assert result.audit_record() == {"id": result.id, "email": "ada@acme.org", "name": "Ada"}

        async with seeded_tenant_db() as db:
            user = (await db.execute(select(User).where(User.id == result.id))).scalars().one()
        assert user.role == "super_admin"
        assert user.email_verified_at is not None
        assert pwd_context.verify("s3cret-pass", user.hashed_password)
        assert [r.name for r in user.roles] == ["super_admin"]

    async def test_generates_password_when_missing(self, seeded_tenant_db):
        async with seeded_tenant_db() as db:
            result = await AdminProvisioner().provision(db, AdminSeed(), "acme")

        assert result.email == "admin@acme.test"
        assert result.generated_password
        async with seeded_tenant_db() as db:
            user = (await db.execute(select(User).where(User.id == result.id))).scalars().one()
        assert pwd_context.verify(result.generated_password, user.hashed_password)

    async def test_skips_when_super_admin_exists(self, seeded_tenant_db):
        await add_user(seeded_tenant_db, "first@acme.org", role="super_admin")

        async with seeded_tenant_db() as db:
            result = await AdminProvisioner().provision(db, AdminSeed(email="second@acme.org"), "acme")

        assert result.skipped is True
        assert result.created is False
        assert await super_admin_count(seeded_tenant_db) == 1

    async def test_second_run_is_a_no_op(self, seeded_tenant_db):
        provisioner = AdminProvisioner()
        seed = AdminSeed(email="ada@acme.org", password="s3cret-pass")
        async with seeded_tenant_db() as db:
            await provisioner.provision(db, seed, "acme")
        async with seeded_tenant_db() as db:
            again = await provisioner.provision(db, seed, "acme")

        assert again.skipped is True
        assert await super_admin_count(seeded_tenant_db) == 1

    async def test_adopts_active_account_with_same_email(self, seeded_tenant_db):
        user_id = await add_user(seeded_tenant_db, "ada@acme.org")

        async with seeded_tenant_db() as db:
            result = await AdminProvisioner().provision(db, AdminSeed(email="ada@acme.org", password="ignored-pass"), "acme")

        assert result.created is False
        assert result.id == user_id
        async with seeded_tenant_db() as db:
            user = (await db.execute(select(User).where(User.id == user_id))).scalars().one()
        assert user.role == "super_admin"
        assert pwd_context.verify("existing-pass", user.hashed_password)
        assert "super_admin" in [r.name for r in user.roles]

    async def test_refuses_inactive_account_with_same_email(self, seeded_tenant_db):
        await add_user(seeded_tenant_db, "ada@acme.org", status="disabled")

        async with seeded_tenant_db() as db:
            with pytest.raises(AdminProvisioningError) as exc_info:
                await AdminProvisioner().provision(db, AdminSeed(email="ada@acme.org"), "acme")

        assert exc_info.value.step == "admin"
        assert await super_admin_count(seeded_tenant_db) == 0

    async def test_missing_role_is_tolerated(self, tenant_session_factory):
        async with tenant_session_factory() as db:
            result = await AdminProvisioner().provision(db, AdminSeed(email="ada@acme.org", password="s3cret-pass"), "acme")
        assert result.created is True
        assert await super_admin_count(tenant_session_factory) == 1
