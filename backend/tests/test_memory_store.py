"""In-memory record store: filtering, ordering, conditional writes."""

import uuid
from datetime import timedelta

import pytest

from assettrack.schemas.asset import AssetFilter, AssetStatus, AssetType
from assettrack.store.base import Collection

pytestmark = pytest.mark.anyio


def _doc(org, **fields):
    return {
        "organization_id": org,
        "name": "Badge",
        "type": "staff",
        "status": "offline",
        "tags": [],
        "is_active": True,
        **fields,
    }


@pytest.fixture
def org(store):
    return store.register(Collection.organizations)


async def test_insert_assigns_id_and_timestamps(store, org, clock):
    record = await store.insert(_doc(org))
    assert isinstance(record.id, uuid.UUID)
    assert record.created_at == record.updated_at == clock.now
    assert await store.find_by_id(record.id) == record


async def test_returned_records_are_copies(store, org):
    record = await store.insert(_doc(org, tags=["a"]))
    record.tags.append("b")
    assert (await store.find_by_id(record.id)).tags == ["a"]


async def test_find_by_id_missing(store):
    assert await store.find_by_id(uuid.uuid4()) is None


async def test_update_fields_touches_only_given_fields(store, org, clock):
    record = await store.insert(_doc(org, location="Ward 1", battery_level=40))
    clock.advance(seconds=5)

    updated = await store.update_fields(record.id, {"battery_level": 35})

    assert updated.battery_level == 35
    assert updated.location == "Ward 1"
    assert updated.updated_at == clock.now
    assert updated.created_at == record.created_at


async def test_update_fields_rejects_unknown_columns(store, org):
    record = await store.insert(_doc(org))
    with pytest.raises(ValueError, match="created_at"):
        await store.update_fields(record.id, {"created_at": None})


async def test_update_fields_missing_asset(store):
    assert await store.update_fields(uuid.uuid4(), {"name": "Ghost"}) is None


async def test_update_fields_if_match(store, org):
    record = await store.insert(_doc(org, status="online"))

    assert await store.update_fields(record.id, {"status": "offline"}, if_match={"status": "low-battery"}) is None
    assert (await store.find_by_id(record.id)).status == AssetStatus.online

    updated = await store.update_fields(record.id, {"status": "offline"}, if_match={"status": "online"})
    assert updated.status == AssetStatus.offline


async def test_exists_by_id(store):
    building = store.register(Collection.buildings)
    assert await store.exists_by_id(Collection.buildings, building)
    assert not await store.exists_by_id(Collection.floors, building)
    assert not await store.exists_by_id(Collection.buildings, uuid.uuid4())


async def test_find_orders_by_last_seen_then_created_at(store, org, clock):
    never_old = await store.insert(_doc(org, name="never-old"))
    clock.advance(seconds=1)
    never_new = await store.insert(_doc(org, name="never-new"))
    seen_early = await store.insert(_doc(org, name="seen-early", last_seen=clock.now - timedelta(hours=1)))
    seen_late = await store.insert(_doc(org, name="seen-late", last_seen=clock.now))

    records, total = await store.find(AssetFilter())

    assert total == 4
    assert [r.id for r in records] == [seen_late.id, seen_early.id, never_new.id, never_old.id]


async def test_find_skip_and_limit(store, org, clock):
    for i in range(5):
        await store.insert(_doc(org, name=f"a{i}", last_seen=clock.now - timedelta(minutes=i)))

    records, total = await store.find(AssetFilter(), skip=3, limit=10)

    assert total == 5
    assert [r.name for r in records] == ["a3", "a4"]


async def test_find_filters(store, org, clock):
    other_org = store.register(Collection.organizations)
    building = store.register(Collection.buildings)
    await store.insert(_doc(org, name="pump", type="device", status="online", building_id=building))
    await store.insert(_doc(org, name="cart", type="equipment", status="low-battery"))
    await store.insert(_doc(org, name="nurse", type="staff", is_active=False))
    await store.insert(_doc(other_org, name="elsewhere", type="device"))

    async def names(**query):
        records, _ = await store.find(AssetFilter(**query))
        return sorted(r.name for r in records)

    assert await names(organization_id=org) == ["cart", "nurse", "pump"]
    assert await names(building_id=building) == ["pump"]
    assert await names(type=AssetType.device) == ["elsewhere", "pump"]
    assert await names(type=[AssetType.device, AssetType.equipment], organization_id=org) == ["cart", "pump"]
    assert await names(status=[AssetStatus.online, AssetStatus.low_battery]) == ["cart", "pump"]
    assert await names(is_active=False) == ["nurse"]
    assert await names(type=[]) == ["cart", "elsewhere", "nurse", "pump"]


async def test_find_last_seen_before_skips_never_seen(store, org, clock):
    await store.insert(_doc(org, name="old", last_seen=clock.now - timedelta(hours=1)))
    await store.insert(_doc(org, name="recent", last_seen=clock.now))
    await store.insert(_doc(org, name="never"))

    records, _ = await store.find(AssetFilter(last_seen_before=clock.now - timedelta(minutes=10)))
    assert [r.name for r in records] == ["old"]


@pytest.mark.parametrize("search, expected", [
    ("PUMP", ["Infusion Pump"]),
    ("radiology", ["Wheelchair"]),
    ("blue", ["Infusion Pump"]),
    ("mobile", ["Wheelchair"]),
    ("  ", ["Infusion Pump", "Wheelchair"]),
    ("nothing-matches", []),
])
async def test_find_search(store, org, search, expected):
    await store.insert(_doc(org, name="Infusion Pump", description="Blue case"))
    await store.insert(_doc(org, name="Wheelchair", location="Radiology", tags=["mobile"]))

    records, _ = await store.find(AssetFilter(search=search))
    assert sorted(r.name for r in records) == expected


async def test_count_by(store, org):
    await store.insert(_doc(org, status="online", type="device"))
    await store.insert(_doc(org, status="online", type="staff"))
    await store.insert(_doc(org, status="offline", type="staff", is_active=False))

    assert await store.count_by(AssetFilter(), "status") == {"online": 2, "offline": 1}
    assert await store.count_by(AssetFilter(is_active=True), "type") == {"device": 1, "staff": 1}
    with pytest.raises(ValueError):
        await store.count_by(AssetFilter(), "name")
