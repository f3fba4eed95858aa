"""
Tests for tenant reference data seeders
"""

import pytest
from sqlalchemy import func, select

from orgtenancy.exceptions import SeedingError
from orgtenancy.models.reference import Category, Currency, Page, PaymentGateway, SocialMediaLink
from orgtenancy.models.user import Permission, Role
from orgtenancy.provisioning.seeders import (
    DEFAULT_SEEDERS,
    PANEL_ACTIONS,
    PANEL_RESOURCES,
    ROLE_PERMISSIONS,
    ReferenceDataSeeder,
    SeedContext,
    Seeder,
)

CONTEXT = SeedContext(tenant_id=1, subdomain="acme", locale="nl", currency="USD")


async def count(factory, model) -> int:
    async with factory() as db:
        result = await db.execute(select(func.count()).select_from(model))
        return int(result.scalar_one())


async def role_permissions(factory, role_name: str) -> set[str]:
    async with factory() as db:
        result = await db.execute(select(Role).where(Role.name == role_name))
        return {p.name for p in result.scalars().one().permissions}


class TestReferenceDataSeeder:
    def test_default_order(self):
        assert [s.name for s in DEFAULT_SEEDERS] == [
            "roles_and_permissions",
            "panel_permissions",
            "payment_gateways",
            "categories",
            "currencies",
            "pages",
            "social_media",
        ]

    def test_steps_are_fixed_at_construction(self):
        seeder = ReferenceDataSeeder(enabled=["categories", "currencies"])
        assert [s.name for s in seeder.enabled_steps] == ["categories", "currencies"]
        assert len(seeder.steps) == len(DEFAULT_SEEDERS)
        with pytest.raises(AttributeError):
            seeder.steps[0].enabled = True

    async def test_seeds_everything(self, tenant_session_factory):
        created = await ReferenceDataSeeder().seed(tenant_session_factory, CONTEXT)

        assert set(created) == {s.name for s in DEFAULT_SEEDERS}
        assert await count(tenant_session_factory, Role) == len(ROLE_PERMISSIONS)
        assert await count(tenant_session_factory, PaymentGateway) == 3
        assert await count(tenant_session_factory, Category) == 10
        assert await count(tenant_session_factory, Currency) == 3
        assert await count(tenant_session_factory, Page) == 14
        assert await count(tenant_session_factory, SocialMediaLink) == 5

    async def test_seeding_twice_creates_nothing_new(self, tenant_session_factory):
        seeder = ReferenceDataSeeder()
        await seeder.seed(tenant_session_factory, CONTEXT)
        totals = {model: await count(tenant_session_factory, model) for model in (Permission, Role, Page, Currency)}

        created = await seeder.seed(tenant_session_factory, CONTEXT)

        assert all(n == 0 for n in created.values()), created
        for model, total in totals.items():
            assert await count(tenant_session_factory, model) == total

    async def test_disabled_seeders_are_skipped(self, tenant_session_factory):
        created = await ReferenceDataSeeder(enabled=["categories"]).seed(tenant_session_factory, CONTEXT)
        assert created == {"categories": 10}
        assert await count(tenant_session_factory, Role) == 0
        assert await count(tenant_session_factory, Page) == 0

    async def test_failure_names_the_seeder(self, tenant_session_factory):
        class BrokenSeeder(Seeder):
            name = "broken"

            async def run(self, db, context):
                raise RuntimeError("no such table")

        seeder = ReferenceDataSeeder(seeders=[*DEFAULT_SEEDERS[:1], BrokenSeeder()], enabled=["roles_and_permissions", "broken"])
        with pytest.raises(SeedingError) as exc_info:
            await seeder.seed(tenant_session_factory, CONTEXT)
        assert exc_info.value.seeder == "broken"
        assert exc_info.value.step == "seed"
        # Earlier seeders stay committed.
        assert await count(tenant_session_factory, Role) == len(ROLE_PERMISSIONS)


class TestRolesAndPermissions:
    async def test_super_admin_has_every_permission(self, tenant_session_factory):
        await ReferenceDataSeeder().seed(tenant_session_factory, CONTEXT)

        granted = await role_permissions(tenant_session_factory, "super_admin")
        panel = {f"{action}_{resource}" for resource in PANEL_RESOURCES for action in PANEL_ACTIONS}
        role_level = {p for perms in ROLE_PERMISSIONS.values() for p in perms if p != "*"}
        assert granted == panel | role_level
        assert await count(tenant_session_factory, Permission) == len(panel | role_level)

    async def test_employee_permissions(self, tenant_session_factory):
        await ReferenceDataSeeder(enabled=["roles_and_permissions"]).seed(tenant_session_factory, CONTEXT)
        assert await role_permissions(tenant_session_factory, "employee") == set(ROLE_PERMISSIONS["employee"])


class TestReferenceData:
    async def test_context_drives_locale_and_currency(self, tenant_session_factory):
        await ReferenceDataSeeder(enabled=["pages", "currencies"]).seed(tenant_session_factory, CONTEXT)

        async with tenant_session_factory() as db:
            pages = (await db.execute(select(Page))).scalars().all()
            currencies = (await db.execute(select(Currency))).scalars().all()

        assert {p.locale for p in pages} == {"nl"}
        assert all(p.status == "published" for p in pages)
        assert [c.code for c in currencies if c.is_default] == ["USD"]

    async def test_gateways_start_inactive_in_test_mode(self, tenant_session_factory):
        await ReferenceDataSeeder(enabled=["payment_gateways"]).seed(tenant_session_factory, CONTEXT)

        async with tenant_session_factory() as db:
            gateways = (await db.execute(select(PaymentGateway).order_by(PaymentGateway.priority))).scalars().all()

        assert [g.provider for g in gateways] == ["stripe", "mollie", "paypal"]
        assert not any(g.is_active for g in gateways)
        assert all(g.test_mode for g in gateways)

    async def test_categories_carry_translations(self, tenant_session_factory):
        await ReferenceDataSeeder(enabled=["categories"]).seed(tenant_session_factory, CONTEXT)

        async with tenant_session_factory() as db:
            education = (await db.execute(select(Category).where(Category.slug == "education"))).scalars().one()

        assert education.name == {"en": "Education", "nl": "Onderwijs", "fr": "Éducation"}
