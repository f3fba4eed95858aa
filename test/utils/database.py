"""
SQLite helpers for tests that need real central or tenant tables
"""

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import NullPool


def create_tables(path, metadata) -> None:
    engine = create_engine(f"sqlite:///{path}")
    metadata.create_all(engine)
    engine.dispose()


def sqlite_engine(path):
    # NullPool: TestClient serves requests on its own event loop.
    return create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
