"""Dashboard counts over the active asset population."""

from datetime import timedelta

import pytest

from assettrack.schemas.asset import AssetFilter, AssetStats, AssetType
from assettrack.services.stats import get_asset_stats

pytestmark = pytest.mark.anyio


async def test_stats_count_status_and_type(make_asset, coordinator, clock, refs):
    fresh = clock.now - timedelta(minutes=1)
    stale = clock.now - timedelta(hours=1)
    await make_asset(type="device", battery_level=80, last_seen=fresh)
    await make_asset(type="device", battery_level=75, last_seen=fresh)
    await make_asset(type="staff", battery_level=60, last_seen=stale)
    await make_asset(type="equipment", battery_level=10, last_seen=fresh)
    retired = await make_asset(type="personnel", battery_level=90, last_seen=fresh)
    await coordinator.deactivate_asset(retired.id, refs.actor)

    stats = await coordinator.get_asset_stats()

    assert stats.total == 4
    assert stats.online == 2
    assert stats.offline == 1
    assert stats.low_battery == 1
    assert stats.by_type.model_dump() == {"device": 2, "equipment": 1, "staff": 1, "personnel": 0}


async def test_stats_on_empty_population_are_zero(store):
    assert await get_asset_stats(store) == AssetStats()


async def test_stats_exclude_inactive_even_when_asked_for(make_asset, coordinator, refs):
    asset = await make_asset()
    await coordinator.deactivate_asset(asset.id, refs.actor)

    stats = await coordinator.get_asset_stats(AssetFilter(is_active=False))
    assert stats.total == 0


async def test_stats_are_scoped_by_filter(make_asset, coordinator, refs):
    await make_asset()
    await make_asset(organization_id=refs.other_organization, type="staff")
    await make_asset(organization_id=refs.other_organization, type="staff", building_id=refs.building)

    stats = await coordinator.get_asset_stats(AssetFilter(organization_id=refs.other_organization))
    assert stats.total == 2
    assert stats.by_type.staff == 2
    assert stats.by_type.device == 0

    stats = await coordinator.get_asset_stats(AssetFilter(building_id=refs.building))
    assert stats.total == 1


async def test_stats_use_persisted_status(make_asset, coordinator, clock):
    await make_asset(battery_level=80, last_seen=clock.now)
    clock.advance(hours=3)

    stats = await coordinator.get_asset_stats()
    assert stats.online == 1
    assert stats.offline == 0


async def test_stats_totals_add_up(make_asset, clock, store):
    for i, level in enumerate([5, 15, 25, 50, 95, None]):
        await make_asset(
            type=list(AssetType)[i % 4].value,
            battery_level=level,
            last_seen=clock.now - timedelta(minutes=4 * i),
        )

    stats = await get_asset_stats(store)

    assert stats.total == 6
    assert stats.online + stats.offline + stats.low_battery == stats.total
    assert sum(stats.by_type.model_dump().values()) == stats.total


async def test_stats_query_is_not_mutated(store):
    query = AssetFilter(is_active=False)
    await get_asset_stats(store, query)
    assert query.is_active is False


async def test_stats_for_one_organization_of_devices(make_asset, coordinator, clock, refs):
    for _ in range(3):
        await make_asset(battery_level=90, last_seen=clock.now)
    for _ in range(2):
        await make_asset(battery_level=90, last_seen=clock.now - timedelta(minutes=30))
    await make_asset(battery_level=8, last_seen=clock.now)
    await make_asset(organization_id=refs.other_organization, battery_level=90, last_seen=clock.now)

    stats = await coordinator.get_asset_stats(AssetFilter(organization_id=refs.organization))

    assert stats.model_dump() == {
        "total": 6,
        "online": 3,
        "offline": 2,
        "low_battery": 1,
        "by_type": {"device": 6, "equipment": 0, "staff": 0, "personnel": 0},
    }
