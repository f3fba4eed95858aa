"""
Tenant directory models stored in the central database.

A Tenant is an isolated organisation with its own database, search indexes
and domain(s). Only `tenants` and `domains` live in the central database;
everything else lives inside each tenant's own database.
"""

import enum
import hashlib
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from orgtenancy.database import Base
from orgtenancy.exceptions import InvalidStatusTransitionError
from orgtenancy.utils.crypto import decrypt_secret, encrypt_secret


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# PostgreSQL truncates identifiers longer than this.
MAX_IDENTIFIER_LENGTH = 63


def bounded_identifier(name: str, limit: int = MAX_IDENTIFIER_LENGTH) -> str:
    """
    Return ``name`` unchanged when it fits in ``limit`` characters.

    Longer names are cut and suffixed with a short hash of the full name, so
    two names sharing a long prefix still map to different identifiers.
    """
    if len(name) <= limit:
        return name
    digest = hashlib.sha256(name.encode()).hexdigest()[:8]
    return f"{name[: limit - len(digest) - 1]}_{digest}"


class ProvisioningStatus(str, enum.Enum):
    pending = "pending"
    provisioning = "provisioning"
    provisioned = "provisioned"
    failed = "failed"
    suspended = "suspended"


# Every legal move of Tenant.provisioning_status. Suspension is terminal.
ALLOWED_TRANSITIONS: dict[ProvisioningStatus, frozenset[ProvisioningStatus]] = {
    ProvisioningStatus.pending: frozenset({ProvisioningStatus.provisioning}),
    ProvisioningStatus.provisioning: frozenset({ProvisioningStatus.provisioned, ProvisioningStatus.failed}),
    ProvisioningStatus.provisioned: frozenset({ProvisioningStatus.suspended}),
    ProvisioningStatus.failed: frozenset({ProvisioningStatus.pending}),
    ProvisioningStatus.suspended: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return ProvisioningStatus(target) in ALLOWED_TRANSITIONS[ProvisioningStatus(current)]
    except ValueError:
        return False


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    subdomain = Column(String(63), nullable=False, unique=True, index=True)  # DNS label, e.g. "acme"
    database = Column(String(128), nullable=True, unique=True)
    database_user = Column(String(255), nullable=True)  # Fernet token
    database_password = Column(Text, nullable=True)  # Fernet token, never plaintext
    provisioning_status = Column(String(20), nullable=False, default=ProvisioningStatus.pending.value)
    provisioning_error = Column(Text, nullable=True)
    provisioned_at = Column(DateTime(timezone=True), nullable=True)
    data = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    domains = relationship("Domain", back_populates="tenant", lazy="selectin", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_tenant_provisioning_status", "provisioning_status"),)

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} subdomain={self.subdomain!r} status={self.provisioning_status}>"

    # State machine

    @property
    def status(self) -> ProvisioningStatus:
        return ProvisioningStatus(self.provisioning_status or ProvisioningStatus.pending.value)

    @property
    def is_active(self) -> bool:
        return self.status is ProvisioningStatus.provisioned

    def transition_to(self, target: ProvisioningStatus) -> None:
        current = self.status
        if target not in ALLOWED_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current.value, target.value, tenant_id=self.id)
        self.provisioning_status = target.value

    def start_provisioning(self) -> None:
        """pending → provisioning; a failed tenant is re-queued to pending first."""
        if self.status is ProvisioningStatus.failed:
            self.transition_to(ProvisioningStatus.pending)
        self.transition_to(ProvisioningStatus.provisioning)
        self.provisioning_error = None

    def mark_provisioned(self) -> None:
        self.transition_to(ProvisioningStatus.provisioned)
        self.provisioning_error = None
        self.provisioned_at = utc_now()

    def mark_failed(self, error: str) -> None:
        """Record a failure. A tenant that is already failed only gets its error text updated."""
        if self.status is not ProvisioningStatus.failed:
            self.transition_to(ProvisioningStatus.failed)
        self.provisioning_error = error

    def requeue(self) -> None:
        self.transition_to(ProvisioningStatus.pending)
        self.provisioning_error = None

    def suspend(self, reason: str = "") -> None:
        self.transition_to(ProvisioningStatus.suspended)
        self._merge_data({"suspension_reason": reason, "suspended_at": utc_now().isoformat()})

    # Naming

    @property
    def subdomain_key(self) -> str:
        """Identifier safe for database, role and index names."""
        if self.subdomain:
            return self.subdomain.replace("-", "_")
        return f"org_{self.id}"

    def default_database_name(self, prefix: str = "tenant_", suffix: str = "") -> str:
        return bounded_identifier(f"{prefix}{self.subdomain_key}{suffix}")

    def default_database_user(self) -> str:
        return bounded_identifier(f"tenant_{self.subdomain_key}")

    @property
    def database_username(self) -> str | None:
        """Decrypted login role of the tenant database."""
        return decrypt_secret(self.database_user) if self.database_user else None

    @database_username.setter
    def database_username(self, username: str | None) -> None:
        self.database_user = encrypt_secret(username) if username else None

    @property
    def search_prefix(self) -> str:
        return f"tenant_{self.subdomain_key}_"

    # Data payload

    def _merge_data(self, values: dict) -> None:
        # Reassign so SQLAlchemy notices the JSON change.
        self.data = {**(self.data or {}), **values}

    @property
    def admin_data(self) -> dict | None:
        return (self.data or {}).get("admin")

    def set_admin_data(self, admin: dict) -> None:
        self._merge_data({"admin": admin})

    def set_provisioning_progress(self, progress: dict) -> None:
        self._merge_data({"provisioning": progress})


class Domain(Base):
    __tablename__ = "domains"

    id = Column(Integer, primary_key=True, index=True)
    domain = Column(String(253), nullable=False, unique=True, index=True)  # e.g. "acme.csr.example.com"
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    tenant = relationship("Tenant", back_populates="domains")
