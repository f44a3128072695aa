"""Failure wrapping in the PostgreSQL store, with fake pool and PostgREST clients."""

import asyncio
import uuid

import asyncpg
import httpx
import pytest
from postgrest.exceptions import APIError

from assettrack.errors import StoreError
from assettrack.schemas.asset import AssetFilter
from assettrack.store.base import Collection
from assettrack.store.postgres import PostgresAssetStore

pytestmark = pytest.mark.anyio


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, error=None, data=None):
        self.error = error
        self.data = data or []
        self.calls = []

    def from_(self, table):
        self.calls.append(("from_", table))
        return self

    def select(self, *columns):
        return self

    def eq(self, column, value):
        self.calls.append(("eq", column, value))
        return self

    def limit(self, n):
        return self

    async def execute(self):
        if self.error is not None:
            raise self.error
        return type("Response", (), {"data": self.data})()


class FailingPool:
    def __init__(self, error):
        self.error = error

    async def fetch(self, *args):
        raise self.error

    async def fetchrow(self, *args):
        raise self.error

    async def fetchval(self, *args):
        raise self.error


async def test_exists_by_id_queries_the_referenced_table():
    building = uuid.uuid4()
    client = FakeQuery(data=[{"id": str(building)}])
    store = PostgresAssetStore(None, client)

    assert await store.exists_by_id(Collection.buildings, building) is True
    assert ("from_", "buildings") in client.calls
    assert ("eq", "id", str(building)) in client.calls


async def test_exists_by_id_missing_row():
    store = PostgresAssetStore(None, FakeQuery(data=[]))
    assert await store.exists_by_id("floors", uuid.uuid4()) is False


@pytest.mark.parametrize("error", [
    httpx.ConnectError("connection refused"),
    httpx.ReadTimeout("read timed out"),
    APIError({"message": "permission denied", "code": "42501"}),
    ConnectionResetError("reset by peer"),
])
async def test_postgrest_failures_become_store_errors(error):
    store = PostgresAssetStore(None, FakeQuery(error=error))

    with pytest.raises(StoreError) as excinfo:
        await store.exists_by_id("buildings", uuid.uuid4())

    assert excinfo.value.__cause__ is error


@pytest.mark.parametrize("error", [
    asyncio.TimeoutError(),
    asyncpg.InterfaceError("pool is closed"),
    asyncpg.PostgresError("server closed the connection"),
    OSError("network unreachable"),
])
async def test_pool_failures_become_store_errors(error):
    store = PostgresAssetStore(FailingPool(error), FakeQuery())

    with pytest.raises(StoreError, match="find_by_id failed"):
        await store.find_by_id(uuid.uuid4())
    with pytest.raises(StoreError, match="count_by failed"):
        await store.count_by(AssetFilter(), "status")
    with pytest.raises(StoreError, match="update_fields failed"):
        await store.update_fields(uuid.uuid4(), {"status": "offline"})


async def test_programming_errors_are_not_wrapped():
    store = PostgresAssetStore(FailingPool(asyncio.TimeoutError()), FakeQuery())
    with pytest.raises(ValueError):
        await store.update_fields(uuid.uuid4(), {"created_at": None})
