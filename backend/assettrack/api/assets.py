"""API routes for asset tracking."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from assettrack.errors import NotFoundError, ValidationError
from assettrack.schemas.asset import (
    AssetBatteryUpdate,
    AssetCreate,
    AssetFilter,
    AssetListResponse,
    AssetLocationUpdate,
    AssetRecord,
    AssetStats,
    AssetStatus,
    AssetType,
    AssetUpdate,
)
from assettrack.services.coordinator import AssetUpdateCoordinator, MAX_PAGE_SIZE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["Assets"])


def get_coordinator(request: Request) -> AssetUpdateCoordinator:
    """The coordinator built at startup (see main.lifespan)."""
    return request.app.state.coordinator


def get_actor_id(x_actor_id: UUID = Header(description="Authenticated admin user id")) -> UUID:
    return x_actor_id


def get_filter(
    organization_id: UUID | None = Query(default=None, alias="organizationId"),
    building_id: UUID | None = Query(default=None, alias="buildingId"),
    floor_id: UUID | None = Query(default=None, alias="floorId"),
    department_id: UUID | None = Query(default=None, alias="departmentId"),
    type: list[AssetType] | None = Query(default=None),
    status: list[AssetStatus] | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = Query(default=None, max_length=200),
) -> AssetFilter:
    return AssetFilter(
        organization_id=organization_id,
        building_id=building_id,
        floor_id=floor_id,
        department_id=department_id,
        type=type,
        status=status,
        is_active=is_active,
        search=search,
    )


def _http_error(exc: Exception, action: str) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("Failed to %s", action)
    return HTTPException(status_code=500, detail="Internal server error")


# ── GET /assets ─────────────────────────────────────


@router.get("", response_model=AssetListResponse, summary="List assets")
async def list_assets(
    query: AssetFilter = Depends(get_filter),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    """Paginated assets, most recently seen first."""
    try:
        return await coordinator.list_assets(query, page, limit)
    except Exception as exc:
        raise _http_error(exc, "list assets") from exc


# ── GET /assets/stats ───────────────────────────────


@router.get("/stats", response_model=AssetStats, summary="Asset counts by status and type")
async def get_asset_stats(
    query: AssetFilter = Depends(get_filter),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    """Counts over active assets; inactive ones are always excluded."""
    try:
        return await coordinator.get_asset_stats(query)
    except Exception as exc:
        raise _http_error(exc, "compute asset stats") from exc


# ── GET /assets/{asset_id} ──────────────────────────


@router.get("/{asset_id}", response_model=AssetRecord, summary="Get one asset")
async def get_asset(
    asset_id: UUID,
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.get_asset_by_id(asset_id)
    except Exception as exc:
        raise _http_error(exc, f"get asset {asset_id}") from exc


# ── POST /assets ────────────────────────────────────


@router.post("", response_model=AssetRecord, status_code=201, summary="Create an asset")
async def create_asset(
    payload: AssetCreate,
    actor_id: UUID = Depends(get_actor_id),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.create_asset(payload, actor_id)
    except Exception as exc:
        raise _http_error(exc, "create asset") from exc


# ── PUT /assets/{asset_id} ──────────────────────────


@router.put("/{asset_id}", response_model=AssetRecord, summary="Update an asset")
async def update_asset(
    asset_id: UUID,
    patch: AssetUpdate,
    actor_id: UUID = Depends(get_actor_id),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    """Partial update: fields missing from the body are left untouched."""
    try:
        return await coordinator.update_asset(asset_id, patch, actor_id)
    except Exception as exc:
        raise _http_error(exc, f"update asset {asset_id}") from exc


# ── PATCH /assets/{asset_id}/location ───────────────


@router.patch("/{asset_id}/location", response_model=AssetRecord, summary="Location ping")
async def update_asset_location(
    asset_id: UUID,
    patch: AssetLocationUpdate,
    actor_id: UUID = Depends(get_actor_id),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    try:
        return await coordinator.update_asset_location(asset_id, patch, actor_id)
    except Exception as exc:
        raise _http_error(exc, f"update location of asset {asset_id}") from exc


# ── PATCH /assets/{asset_id}/battery ────────────────


@router.patch("/{asset_id}/battery", response_model=AssetRecord, summary="Battery report")
async def update_asset_battery(
    asset_id: UUID,
    payload: AssetBatteryUpdate,
    actor_id: UUID = Depends(get_actor_id),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    """Record a battery report.

    A level outside 0..100 (or not a whole number) is rejected by the body
    schema with 422, before the coordinator runs. The coordinator's own
    ValidationError surfaces as 400.
    """
    try:
        return await coordinator.update_asset_battery(asset_id, payload.battery_level, actor_id)
    except Exception as exc:
        raise _http_error(exc, f"update battery of asset {asset_id}") from exc


# ── DELETE /assets/{asset_id} ───────────────────────


@router.delete("/{asset_id}", response_model=AssetRecord, summary="Deactivate an asset")
async def delete_asset(
    asset_id: UUID,
    actor_id: UUID = Depends(get_actor_id),
    coordinator: AssetUpdateCoordinator = Depends(get_coordinator),
):
    """Soft delete: the asset is flagged inactive and keeps its status."""
    try:
        return await coordinator.deactivate_asset(asset_id, actor_id)
    except Exception as exc:
        raise _http_error(exc, f"deactivate asset {asset_id}") from exc
