"""
Pytest configuration and fixtures for the tenancy tests

The central directory and every tenant database are SQLite files under a
per-test temporary directory, so tests need neither PostgreSQL nor Redis.
"""

import os
import sys
import tempfile

import pytest
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

# Settings are read once at import time, so the environment has to be ready first.
_BOOT_DIR = tempfile.mkdtemp(prefix="orgtenancy-test-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_BOOT_DIR}/central.db"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["CENTRAL_DOMAINS"] = '["csr.example.com"]'
os.environ["RESOLUTION_STRATEGY"] = "domain"
os.environ["CREDENTIAL_ENCRYPTION_KEY"] = ""

import orgtenancy.database as database_module  # noqa: E402
import orgtenancy.models  # noqa: E402, F401
from orgtenancy.database import Base, TenantBase  # noqa: E402
from orgtenancy.events import EventDispatcher, TenantEvent  # noqa: E402
from orgtenancy.provisioning.database_manager import (  # noqa: E402
    DatabaseCredentials,
    build_database_user,
    generate_password,
)
from orgtenancy.provisioning.search import TenantSearchIndexManager  # noqa: E402
from orgtenancy.services.connection_manager import TenantConnectionManager  # noqa: E402
from orgtenancy.services.tenant_service import create_tenant  # noqa: E402
from orgtenancy.utils.crypto import decrypt_secret  # noqa: E402

from utils.database import create_tables, sqlite_engine  # noqa: E402
from utils.fake_search import FakeMeilisearch  # noqa: E402


@pytest.fixture
def central_session_factory(tmp_path, monkeypatch):
    """Fresh central directory database, installed as the application's session maker."""
    create_tables(tmp_path / "central.db", Base.metadata)
    engine = sqlite_engine(tmp_path / "central.db")
    factory = async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

    monkeypatch.setattr(database_module, "engine", engine)
    monkeypatch.setattr(database_module, "AsyncSessionLocal", factory)
    return factory


@pytest.fixture
def tenant_connections(tmp_path):
    """Connection manager that maps every tenant database to a SQLite file."""
    manager = TenantConnectionManager(
        url_factory=lambda tenant: make_url(f"sqlite+aiosqlite:///{tmp_path}/{tenant.database}.db"),
        engine_options={"poolclass": NullPool},
    )
    return manager


@pytest.fixture
def tenant_session_factory(tmp_path):
    """Standalone tenant database with the tenant tables already created."""
    create_tables(tmp_path / "tenant_standalone.db", TenantBase.metadata)
    engine = sqlite_engine(tmp_path / "tenant_standalone.db")
    return async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


class FakeDatabaseManager:
    """Stands in for PostgreSQL: remembers which databases and roles exist."""

    def __init__(self):
        self.databases: dict[str, str] = {}
        self.passwords: dict[str, str] = {}
        self.created: list[str] = []
        self.calls = 0

    async def create_database(self, tenant) -> DatabaseCredentials:
        self.calls += 1
        database = tenant.database or tenant.default_database_name()
        username = tenant.database_username or build_database_user(tenant)
        password = decrypt_secret(tenant.database_password) if tenant.database_password else generate_password()

        created_database = database not in self.databases
        created_user = username not in self.passwords
        if created_database:
            self.databases[database] = username
            self.created.append(database)
        self.passwords[username] = password
        return DatabaseCredentials(
            database=database,
            username=username,
            password=password,
            created_database=created_database,
            created_user=created_user,
        )

    async def dispose(self) -> None:
        pass


@pytest.fixture
def fake_database_manager():
    return FakeDatabaseManager()


@pytest.fixture
def meilisearch():
    return FakeMeilisearch()


@pytest.fixture
def search_manager(meilisearch):
    return TenantSearchIndexManager(host="http://search.test", api_key="test-key", transport=meilisearch.transport())


class RecordingEvents(EventDispatcher):
    def __init__(self):
        super().__init__()
        self.received: list[TenantEvent] = []
        self.subscribe(TenantEvent, self._record)

    async def _record(self, event: TenantEvent) -> None:
        self.received.append(event)

    def of_type(self, event_type: type) -> list[TenantEvent]:
        return [e for e in self.received if isinstance(e, event_type)]


@pytest.fixture
def events():
    return RecordingEvents()


@pytest.fixture
def make_tenant(central_session_factory):
    """Create a pending tenant in the central directory."""

    async def _make(name: str = "Acme Foundation", subdomain: str = "acme"):
        async with central_session_factory() as db:
            return await create_tenant(name=name, subdomain=subdomain, db=db)

    return _make
