"""Write paths for tracked assets.

Every write goes read -> derive -> write: the asset is read once, the new
status is derived from that snapshot merged with the incoming fields, and
only the changed fields are persisted in one store call. No state is kept
between calls, so concurrent writers resolve last-write-wins at the store.
"""

import logging
import math
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from assettrack.errors import NotFoundError, ReferentialIntegrityError, ValidationError
from assettrack.schemas.asset import (
    AssetCreate,
    AssetFilter,
    AssetListResponse,
    AssetLocationUpdate,
    AssetRecord,
    AssetStats,
    AssetStatus,
    AssetUpdate,
    Pagination,
    utc_now,
)
from assettrack.services import stats
from assettrack.services.status import (
    LOW_BATTERY_THRESHOLD,
    OFFLINE_AFTER,
    derive_status,
    sanitize_tags,
)
from assettrack.store.base import AssetStore, Collection

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

_REFERENCE_FIELDS = {
    "organization_id": Collection.organizations,
    "building_id": Collection.buildings,
    "floor_id": Collection.floors,
    "department_id": Collection.departments,
}


def _parse(model: type[BaseModel], data: Any) -> BaseModel:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ValidationError(details) from exc


def get_pagination_params(page: int | None, limit: int | None) -> tuple[int, int, int]:
    """Clamp page/limit and return (page, limit, skip)."""
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
    return page, limit, (page - 1) * limit


def build_pagination(total: int, page: int, limit: int) -> Pagination:
    pages = max(1, math.ceil(total / limit))
    return Pagination(
        page=page,
        limit=limit,
        total=total,
        pages=pages,
        has_next_page=page < pages,
        has_previous_page=page > 1,
    )


class AssetUpdateCoordinator:
    """Runs every asset write path through the status deriver.

    Construct once with the record store; the clock is injectable so tests
    can control "now".
    """

    def __init__(
        self,
        store: AssetStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        low_battery_threshold: int = LOW_BATTERY_THRESHOLD,
        offline_after: timedelta = OFFLINE_AFTER,
    ):
        self.store = store
        self._clock = clock
        self._low_battery_threshold = low_battery_threshold
        self._offline_after = offline_after

    def _derive(
        self,
        current: AssetStatus,
        battery_level: int | None,
        last_seen: datetime | None,
        now: datetime,
    ) -> AssetStatus:
        return derive_status(
            current,
            battery_level,
            last_seen,
            now,
            low_battery_threshold=self._low_battery_threshold,
            offline_after=self._offline_after,
        )

    async def _check_references(self, fields: dict[str, Any], actor_id: UUID | None) -> None:
        refs = [
            (collection, fields[name])
            for name, collection in _REFERENCE_FIELDS.items()
            if fields.get(name) is not None
        ]
        if actor_id is not None:
            refs.append((Collection.admin_users, actor_id))
        for collection, entity_id in refs:
            if not await self.store.exists_by_id(collection, entity_id):
                logger.warning("Rejected asset write: %s %s does not exist", collection.value, entity_id)
                raise ReferentialIntegrityError(collection.value, entity_id)

    async def _get(self, asset_id: UUID) -> AssetRecord:
        asset = await self.store.find_by_id(asset_id)
        if asset is None:
            raise NotFoundError("Asset not found")
        return asset

    async def _write(self, before: AssetRecord, fields: dict[str, Any]) -> AssetRecord:
        updated = await self.store.update_fields(before.id, fields)
        if updated is None:
            # Removed between our read and write
            raise NotFoundError("Asset not found")
        if updated.status != before.status:
            logger.info(
                "Asset %s status %s -> %s",
                updated.id, before.status.value, updated.status.value,
            )
        return updated

    # ── Reads ──────────────────────────────────────

    async def get_asset_by_id(self, asset_id: UUID) -> AssetRecord:
        return await self._get(asset_id)

    async def list_assets(
        self,
        query: AssetFilter | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> AssetListResponse:
        page, limit, skip = get_pagination_params(page, limit)
        assets, total = await self.store.find(query or AssetFilter(), skip=skip, limit=limit)
        return AssetListResponse(assets=assets, pagination=build_pagination(total, page, limit))

    async def get_asset_stats(self, query: AssetFilter | None = None) -> AssetStats:
        return await stats.get_asset_stats(self.store, query)

    # ── Writes ─────────────────────────────────────

    async def create_asset(self, data: AssetCreate | dict, actor_id: UUID | None) -> AssetRecord:
        """Create an asset. Status defaults to offline until telemetry says otherwise."""
        payload = _parse(AssetCreate, data)
        await self._check_references(payload.model_dump(), actor_id)

        status = self._derive(
            payload.status or AssetStatus.offline,
            payload.battery_level,
            payload.last_seen,
            self._clock(),
        )
        asset = await self.store.insert({
            "organization_id": payload.organization_id,
            "name": payload.name,
            "type": payload.type.value,
            "status": status.value,
            "building_id": payload.building_id,
            "floor_id": payload.floor_id,
            "location": payload.location,
            "department_id": payload.department_id,
            "battery_level": payload.battery_level,
            "last_seen": payload.last_seen,
            "map_coordinates": (
                payload.map_coordinates.model_dump() if payload.map_coordinates else None
            ),
            "description": payload.description,
            "tags": sanitize_tags(payload.tags),
            "is_active": payload.is_active,
            "created_by": actor_id,
            "updated_by": actor_id,
        })
        logger.info(
            "Created asset %s (%s) in organization %s status=%s",
            asset.id, asset.type.value, asset.organization_id, asset.status.value,
        )
        return asset

    async def update_asset(
        self,
        asset_id: UUID,
        patch: AssetUpdate | dict,
        actor_id: UUID | None,
    ) -> AssetRecord:
        """Apply the fields present in ``patch`` and re-derive status.

        Status is re-derived even when no telemetry field changed, since
        elapsed time alone can make an asset stale. A ``status`` in the patch
        only seeds the derivation.
        """
        patch = _parse(AssetUpdate, patch)
        changes = patch.model_dump(exclude_unset=True)
        asset = await self._get(asset_id)
        await self._check_references(changes, actor_id)

        hint = changes.pop("status", None)
        if "type" in changes:
            changes["type"] = changes["type"].value
        if "tags" in changes:
            changes["tags"] = sanitize_tags(changes["tags"])

        status = self._derive(
            AssetStatus(hint) if hint else asset.status,
            changes.get("battery_level", asset.battery_level),
            changes.get("last_seen", asset.last_seen),
            self._clock(),
        )
        changes["status"] = status.value
        changes["updated_by"] = actor_id
        return await self._write(asset, changes)

    async def update_asset_location(
        self,
        asset_id: UUID,
        location_patch: AssetLocationUpdate | dict,
        actor_id: UUID | None,
    ) -> AssetRecord:
        """Record a location ping.

        The ping counts as a heartbeat: last_seen moves to now (unless given)
        and an offline verdict is overridden to online. Low battery is kept.
        """
        patch = _parse(AssetLocationUpdate, location_patch)
        changes = patch.model_dump(exclude_unset=True)
        now = self._clock()
        if changes.get("last_seen") is None:
            changes["last_seen"] = now

        asset = await self._get(asset_id)
        await self._check_references(changes, actor_id)

        status = self._derive(asset.status, asset.battery_level, changes["last_seen"], now)
        if status == AssetStatus.offline:
            status = AssetStatus.online
        changes["status"] = status.value
        changes["updated_by"] = actor_id
        return await self._write(asset, changes)

    async def update_asset_battery(
        self,
        asset_id: UUID,
        battery_level: int,
        actor_id: UUID | None,
    ) -> AssetRecord:
        """Record a battery report, which is also a heartbeat."""
        if (
            isinstance(battery_level, bool)
            or not isinstance(battery_level, (int, float))
            or not 0 <= battery_level <= 100
        ):
            raise ValidationError("Battery level must be between 0 and 100")
        if battery_level != int(battery_level):
            raise ValidationError("Battery level must be a whole number")

        now = self._clock()
        asset = await self._get(asset_id)
        await self._check_references({}, actor_id)

        status = self._derive(asset.status, int(battery_level), now, now)
        return await self._write(asset, {
            "battery_level": int(battery_level),
            "last_seen": now,
            "status": status.value,
            "updated_by": actor_id,
        })

    async def deactivate_asset(self, asset_id: UUID, actor_id: UUID | None) -> AssetRecord:
        """Soft-delete. The last known status is kept for historical reporting."""
        asset = await self._get(asset_id)
        await self._check_references({}, actor_id)
        deactivated = await self._write(asset, {"is_active": False, "updated_by": actor_id})
        logger.info("Deactivated asset %s", asset_id)
        return deactivated

    async def sweep_stale_assets(self) -> int:
        """Mark online assets whose last heartbeat is too old as offline.

        Each flip is conditional on last_seen and status being unchanged
        since the scan, so a heartbeat landing meanwhile wins. Returns the
        number of assets flipped.
        """
        now = self._clock()
        candidates, _ = await self.store.find(AssetFilter(
            is_active=True,
            status=AssetStatus.online,
            last_seen_before=now - self._offline_after,
        ))
        flipped = 0
        for asset in candidates:
            status = self._derive(asset.status, asset.battery_level, asset.last_seen, now)
            if status == asset.status:
                continue
            updated = await self.store.update_fields(
                asset.id,
                {"status": status.value},
                if_match={"last_seen": asset.last_seen, "status": asset.status.value},
            )
            if updated is not None:
                flipped += 1
        if flipped:
            logger.info("Staleness sweep marked %d asset(s) offline", flipped)
        return flipped
