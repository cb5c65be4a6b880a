"""Shared fixtures: a file-backed SQLite business database per test."""
from __future__ import annotations

import pytest

from staffing.client import BusinessClientManager
from staffing.db import build_engine
from staffing.models import Base
from staffing.stores import TenantContext

TENANT = "tenant-1"
USER = "user-1"


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'business.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def manager(engine):
    manager = BusinessClientManager(engine)
    assert await manager.set_token("test-token")
    return manager


@pytest.fixture
def context():
    return TenantContext(tenant_id=TENANT, user_id=USER)


@pytest.fixture
async def seed(manager):
    """Insert rows straight through the table client."""
    async def insert(table: str, **values):
        values.setdefault("tenant_id", TENANT)
        result = await manager.get_client().table(table).insert(values).single().execute()
        return result.data

    return insert
