"""Pydantic schemas for assets: the stored record, per-operation patches,
listing filters and dashboard stats."""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class AssetType(str, Enum):
    device = "device"
    equipment = "equipment"
    staff = "staff"
    personnel = "personnel"


class AssetStatus(str, Enum):
    online = "online"
    offline = "offline"
    low_battery = "low-battery"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive timestamps from clients are taken to be UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ── Stored record ───────────────────────────────────


class MapCoordinates(BaseModel):
    """Planar (x/y) and/or geographic (latitude/longitude) position."""
    x: float | None = None
    y: float | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)


class AssetRecord(BaseModel):
    """An asset as persisted by the record store."""
    id: UUID
    organization_id: UUID
    name: str
    type: AssetType
    status: AssetStatus = Field(description="online | offline | low-battery")
    building_id: UUID | None = None
    floor_id: UUID | None = None
    location: str | None = None
    department_id: UUID | None = None
    battery_level: int | None = None
    last_seen: datetime | None = None
    map_coordinates: MapCoordinates | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True
    created_by: UUID | None = None
    updated_by: UUID | None = None
    created_at: datetime
    updated_at: datetime

    normalize_timestamps = field_validator("last_seen", "created_at", "updated_at")(_as_utc)


# ── Write payloads ──────────────────────────────────


class AssetCreate(BaseModel):
    """Payload for creating an asset."""
    model_config = ConfigDict(extra="forbid")

    organization_id: UUID
    name: str = Field(..., min_length=2, max_length=150)
    type: AssetType
    status: AssetStatus | None = None
    building_id: UUID | None = None
    floor_id: UUID | None = None
    location: str | None = Field(default=None, max_length=200)
    department_id: UUID | None = None
    battery_level: int | None = Field(default=None, ge=0, le=100)
    last_seen: datetime | None = None
    map_coordinates: MapCoordinates | None = None
    description: str | None = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)
    is_active: bool = True

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(
        "building_id", "floor_id", "department_id", "location", "description",
        mode="before",
    )
    @classmethod
    def blank_is_null(cls, v):
        return _blank_to_none(v)

    normalize_timestamps = field_validator("last_seen")(_as_utc)


class AssetUpdate(BaseModel):
    """Partial update. Only fields present in the payload are applied;
    an explicit null clears a nullable field."""
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=150)
    type: AssetType | None = None
    status: AssetStatus | None = None
    building_id: UUID | None = None
    floor_id: UUID | None = None
    location: str | None = Field(default=None, max_length=200)
    department_id: UUID | None = None
    battery_level: int | None = Field(default=None, ge=0, le=100)
    last_seen: datetime | None = None
    map_coordinates: MapCoordinates | None = None
    description: str | None = Field(default=None, max_length=500)
    tags: list[str] | None = None
    is_active: bool | None = None

    @field_validator("name", mode="before")
    @classmethod
    def trim_name(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(
        "building_id", "floor_id", "department_id", "location", "description",
        mode="before",
    )
    @classmethod
    def blank_is_null(cls, v):
        return _blank_to_none(v)

    normalize_timestamps = field_validator("last_seen")(_as_utc)

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("name", "type", "is_active"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class AssetLocationUpdate(BaseModel):
    """Location ping. ``last_seen`` defaults to the time of the call."""
    model_config = ConfigDict(extra="forbid")

    building_id: UUID | None = None
    floor_id: UUID | None = None
    location: str | None = Field(default=None, max_length=200)
    map_coordinates: MapCoordinates | None = None
    last_seen: datetime | None = None

    @field_validator("building_id", "floor_id", "location", mode="before")
    @classmethod
    def blank_is_null(cls, v):
        return _blank_to_none(v)

    normalize_timestamps = field_validator("last_seen")(_as_utc)


class AssetBatteryUpdate(BaseModel):
    """Battery report."""
    battery_level: int = Field(..., ge=0, le=100)


# ── Listing ─────────────────────────────────────────


class AssetFilter(BaseModel):
    """Filter shared by listing, stats and the staleness sweep."""
    organization_id: UUID | None = None
    building_id: UUID | None = None
    floor_id: UUID | None = None
    department_id: UUID | None = None
    type: AssetType | list[AssetType] | None = None
    status: AssetStatus | list[AssetStatus] | None = None
    is_active: bool | None = None
    search: str | None = None
    last_seen_before: datetime | None = None

    @field_validator("search", mode="before")
    @classmethod
    def trim_search(cls, v):
        if isinstance(v, str):
            return v.strip() or None
        return v

    normalize_timestamps = field_validator("last_seen_before")(_as_utc)

    def types(self) -> list[AssetType] | None:
        return _as_list(self.type)

    def statuses(self) -> list[AssetStatus] | None:
        return _as_list(self.status)


def _as_list(value):
    if value is None:
        return None
    if isinstance(value, list):
        return value or None
    return [value]


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next_page: bool
    has_previous_page: bool


class AssetListResponse(BaseModel):
    """Response for GET /assets."""
    assets: list[AssetRecord]
    pagination: Pagination


# ── Stats ───────────────────────────────────────────


class AssetTypeCounts(BaseModel):
    device: int = 0
    equipment: int = 0
    staff: int = 0
    personnel: int = 0


class AssetStats(BaseModel):
    """Counts over the active asset population."""
    total: int = 0
    online: int = 0
    offline: int = 0
    low_battery: int = 0
    by_type: AssetTypeCounts = Field(default_factory=AssetTypeCounts)
