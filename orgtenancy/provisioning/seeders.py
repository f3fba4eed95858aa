"""
Reference data seeders

Each seeder inserts the rows it owns that are missing from the tenant
database, keyed by a natural key (slug, code, provider, ...). Running a
seeder twice never duplicates rows, so a retried provisioning run can seed
again from the start.

ReferenceDataSeeder runs the enabled seeders in a fixed order. Roles come
first because the panel permissions and the admin account attach to them.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from orgtenancy.config import settings
from orgtenancy.exceptions import SeedingError
from orgtenancy.models.reference import Category, Currency, Page, PaymentGateway, SocialMediaLink
from orgtenancy.models.user import Permission, Role, RoleEnum

logger = logging.getLogger(__name__)

GUARD = "web"


@dataclass(frozen=True)
class SeedContext:
    """Per-tenant values seeders may need."""

    tenant_id: int
    subdomain: str
    locale: str = "en"
    timezone: str = "UTC"
    currency: str = "EUR"


async def _insert_missing(db: AsyncSession, model, key: str, rows: list[dict]) -> int:
    column = getattr(model, key)
    result = await db.execute(select(column))
    existing = set(result.scalars().all())
    created = 0
    for row in rows:
        if row[key] in existing:
            continue
        db.add(model(**row))
        created += 1
    return created


class Seeder:
    name = ""

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        raise NotImplementedError


# ============================================================================
# Roles & permissions
# ============================================================================

ROLE_PERMISSIONS: dict[str, list[str]] = {
    RoleEnum.super_admin.value: ["*"],
    RoleEnum.admin.value: [
        "campaigns.view",
        "campaigns.create",
        "campaigns.edit",
        "campaigns.delete",
        "campaigns.approve",
        "donations.view",
        "donations.refund",
        "users.view",
        "users.manage",
        "reports.view",
        "settings.manage",
    ],
    RoleEnum.manager.value: [
        "campaigns.view",
        "campaigns.create",
        "campaigns.edit",
        "campaigns.approve",
        "donations.view",
        "reports.view",
    ],
    RoleEnum.employee.value: [
        "campaigns.view",
        "campaigns.create",
        "donations.view",
    ],
}


async def _ensure_permissions(db: AsyncSession, names: list[str]) -> dict[str, Permission]:
    result = await db.execute(select(Permission).where(Permission.guard_name == GUARD))
    permissions = {p.name: p for p in result.scalars().all()}
    for name in names:
        if name not in permissions:
            permission = Permission(name=name, guard_name=GUARD)
            db.add(permission)
            permissions[name] = permission
    await db.flush()
    return permissions


async def _ensure_roles(db: AsyncSession, names: list[str]) -> dict[str, Role]:
    result = await db.execute(select(Role).where(Role.guard_name == GUARD))
    roles = {r.name: r for r in result.scalars().all()}
    for name in names:
        if name not in roles:
            role = Role(name=name, guard_name=GUARD, permissions=[])
            db.add(role)
            roles[name] = role
    await db.flush()
    return roles


def _attach(role: Role, permissions: list[Permission]) -> int:
    have = {p.name for p in role.permissions}
    added = 0
    for permission in permissions:
        if permission.name not in have:
            role.permissions.append(permission)
            added += 1
    return added


class RolesAndPermissionsSeeder(Seeder):
    name = "roles_and_permissions"

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        names = sorted({p for perms in ROLE_PERMISSIONS.values() for p in perms if p != "*"})
        permissions = await _ensure_permissions(db, names)
        roles = await _ensure_roles(db, list(ROLE_PERMISSIONS))

        attached = 0
        for role_name, granted in ROLE_PERMISSIONS.items():
            selected = list(permissions.values()) if "*" in granted else [permissions[p] for p in granted]
            attached += _attach(roles[role_name], selected)
        return attached


PANEL_RESOURCES = [
    "campaign",
    "donation",
    "user",
    "role",
    "category",
    "page",
    "currency",
    "payment_gateway",
    "social_media_link",
]
PANEL_ACTIONS = ["view_any", "view", "create", "update", "delete", "delete_any"]


class PanelPermissionsSeeder(Seeder):
    """Admin panel permissions (``{action}_{resource}``), granted to super admins."""

    name = "panel_permissions"

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        names = [f"{action}_{resource}" for resource in PANEL_RESOURCES for action in PANEL_ACTIONS]
        permissions = await _ensure_permissions(db, names)
        roles = await _ensure_roles(db, [RoleEnum.super_admin.value])
        return _attach(roles[RoleEnum.super_admin.value], [permissions[n] for n in names])


# ============================================================================
# Reference data
# ============================================================================


class PaymentGatewaySeeder(Seeder):
    """Gateways start inactive and in test mode until the tenant adds keys."""

    name = "payment_gateways"

    GATEWAYS = [
        {"provider": "stripe", "name": "Stripe", "priority": 1},
        {"provider": "mollie", "name": "Mollie", "priority": 2},
        {"provider": "paypal", "name": "PayPal", "priority": 3},
    ]

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        rows = [{**g, "is_active": False, "test_mode": True, "settings": {}} for g in self.GATEWAYS]
        return await _insert_missing(db, PaymentGateway, "provider", rows)


class CategorySeeder(Seeder):
    name = "categories"

    CATEGORIES = [
        ("education", {"en": "Education", "nl": "Onderwijs", "fr": "Éducation"}),
        ("healthcare", {"en": "Healthcare", "nl": "Gezondheidszorg", "fr": "Soins de santé"}),
        ("environment", {"en": "Environment", "nl": "Milieu", "fr": "Environnement"}),
        ("community", {"en": "Community", "nl": "Gemeenschap", "fr": "Communauté"}),
        ("emergency-relief", {"en": "Emergency Relief", "nl": "Noodhulp", "fr": "Secours d'urgence"}),
        ("arts-culture", {"en": "Arts & Culture", "nl": "Kunst & Cultuur", "fr": "Arts et Culture"}),
        ("sports-recreation", {"en": "Sports & Recreation", "nl": "Sport & Recreatie", "fr": "Sports et Loisirs"}),
        ("animal-welfare", {"en": "Animal Welfare", "nl": "Dierenwelzijn", "fr": "Bien-être animal"}),
        ("technology", {"en": "Technology", "nl": "Technologie", "fr": "Technologie"}),
        ("other", {"en": "Other", "nl": "Overige", "fr": "Autre"}),
    ]

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        rows = [
            {"slug": slug, "name": name, "sort_order": order, "is_active": True}
            for order, (slug, name) in enumerate(self.CATEGORIES, start=1)
        ]
        return await _insert_missing(db, Category, "slug", rows)


class CurrencySeeder(Seeder):
    name = "currencies"

    CURRENCIES = [
        {"code": "EUR", "name": "Euro", "symbol": "€"},
        {"code": "USD", "name": "US Dollar", "symbol": "$"},
        {"code": "GBP", "name": "British Pound", "symbol": "£"},
    ]

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        default = context.currency.upper()
        rows = [
            {**c, "decimal_places": 2, "exchange_rate": Decimal("1"), "is_default": c["code"] == default, "is_active": True}
            for c in self.CURRENCIES
        ]
        return await _insert_missing(db, Currency, "code", rows)


class PageSeeder(Seeder):
    """Published static pages in the tenant's default locale."""

    name = "pages"

    PAGES = [
        ("help-center", "Help Center"),
        ("faq", "Frequently Asked Questions"),
        ("contact", "Contact Us"),
        ("csr-guidelines", "Corporate Social Responsibility Guidelines"),
        ("about", "About Us"),
        ("sustainability", "Sustainability Commitment"),
        ("blog", "Blog & Insights"),
        ("employee-resources", "Employee Resources"),
        ("privacy", "Privacy Policy"),
        ("terms", "Terms of Service"),
        ("cookies", "Cookie Policy"),
        ("security", "Security & Data Protection"),
        ("accessibility", "Accessibility Statement"),
        ("compliance", "Regulatory Compliance"),
    ]

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        result = await db.execute(select(Page.slug).where(Page.locale == context.locale))
        existing = set(result.scalars().all())
        created = 0
        for order, (slug, title) in enumerate(self.PAGES, start=1):
            if slug in existing:
                continue
            db.add(
                Page(
                    slug=slug,
                    locale=context.locale,
                    title=title,
                    content="",
                    status="published",
                    sort_order=order,
                )
            )
            created += 1
        return created


class SocialMediaSeeder(Seeder):
    """Placeholder links; inactive until the tenant fills in a URL."""

    name = "social_media"

    PLATFORMS = ["facebook", "twitter", "linkedin", "instagram", "youtube"]

    async def run(self, db: AsyncSession, context: SeedContext) -> int:
        rows = [
            {"platform": p, "url": None, "icon": p, "sort_order": i, "is_active": False}
            for i, p in enumerate(self.PLATFORMS, start=1)
        ]
        return await _insert_missing(db, SocialMediaLink, "platform", rows)


# Fixed order; later seeders rely on earlier ones.
DEFAULT_SEEDERS: list[Seeder] = [
    RolesAndPermissionsSeeder(),
    PanelPermissionsSeeder(),
    PaymentGatewaySeeder(),
    CategorySeeder(),
    CurrencySeeder(),
    PageSeeder(),
    SocialMediaSeeder(),
]


@dataclass(frozen=True)
class SeederStep:
    name: str
    seeder: Seeder
    enabled: bool


class ReferenceDataSeeder:
    """Runs the enabled seeders in order, one transaction per seeder."""

    def __init__(self, seeders: list[Seeder] | None = None, enabled: list[str] | None = None):
        enabled_names = set(settings.enabled_seeders if enabled is None else enabled)
        self.steps = tuple(
            SeederStep(name=s.name, seeder=s, enabled=s.name in enabled_names)
            for s in (DEFAULT_SEEDERS if seeders is None else seeders)
        )

    @property
    def enabled_steps(self) -> list[SeederStep]:
        return [step for step in self.steps if step.enabled]

    async def seed(self, session_factory, context: SeedContext) -> dict[str, int]:
        """Run every enabled seeder; returns rows created per seeder."""
        created: dict[str, int] = {}
        skipped = [step.name for step in self.steps if not step.enabled]
        if skipped:
            logger.info("Seeders disabled, skipping: %s tenant_id=%s", skipped, context.tenant_id)
        for step in self.enabled_steps:
            try:
                async with session_factory() as db:
                    created[step.name] = await step.seeder.run(db, context)
                    await db.commit()
            except Exception as e:
                raise SeedingError(f"Seeder '{step.name}' failed: {e}", seeder=step.name) from e
            logger.info(
                "Seeder finished: %s tenant_id=%s created=%d",
                step.name,
                context.tenant_id,
                created[step.name],
            )
        return created
