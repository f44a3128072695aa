"""Shared fixtures: a controllable clock, an in-memory store with its
referenced entities registered, and a coordinator wired to both."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from assettrack.services.coordinator import AssetUpdateCoordinator
from assettrack.store.base import Collection
from assettrack.store.memory import InMemoryAssetStore

T0 = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryAssetStore(clock=clock)


@pytest.fixture
def refs(store):
    return SimpleNamespace(
        organization=store.register(Collection.organizations),
        other_organization=store.register(Collection.organizations),
        building=store.register(Collection.buildings),
        floor=store.register(Collection.floors),
        department=store.register(Collection.departments),
        actor=store.register(Collection.admin_users),
    )


@pytest.fixture
def coordinator(store, clock):
    return AssetUpdateCoordinator(store, clock=clock)


@pytest.fixture
def make_asset(coordinator, refs):
    """Create an asset through the coordinator with sensible defaults."""
    async def _make(**fields):
        data = {
            "organization_id": refs.organization,
            "name": "Infusion Pump 7",
            "type": "device",
            **fields,
        }
        return await coordinator.create_asset(data, refs.actor)
    return _make
