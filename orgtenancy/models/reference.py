"""
Reference data seeded into every tenant database during provisioning.
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, Numeric, String, Text, UniqueConstraint

from orgtenancy.database import TenantBase
from orgtenancy.models.tenant import utc_now


class PaymentGateway(TenantBase):
    __tablename__ = "payment_gateways"

    id = Column(Integer, primary_key=True, index=True)
    provider = Column(String(50), nullable=False, unique=True)  # "stripe", "mollie", ...
    name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    test_mode = Column(Boolean, nullable=False, default=True)
    priority = Column(Integer, nullable=False, default=0)
    settings = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Category(TenantBase):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), nullable=False, unique=True)
    name = Column(JSON, nullable=False)  # {"en": "...", "fr": "..."}
    color = Column(String(20), nullable=True)
    icon = Column(String(50), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Currency(TenantBase):
    __tablename__ = "currencies"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(3), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    symbol = Column(String(10), nullable=False)
    decimal_places = Column(Integer, nullable=False, default=2)
    exchange_rate = Column(Numeric(18, 6), nullable=False, default=1)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Page(TenantBase):
    __tablename__ = "pages"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(100), nullable=False)
    locale = Column(String(10), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="draft")
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)

    __table_args__ = (UniqueConstraint("slug", "locale", name="uq_pages_slug_locale"),)


class SocialMediaLink(TenantBase):
    __tablename__ = "social_media_links"

    id = Column(Integer, primary_key=True, index=True)
    platform = Column(String(50), nullable=False, unique=True)
    url = Column(String(500), nullable=True)
    icon = Column(String(50), nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
