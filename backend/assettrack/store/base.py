"""Record store contract for asset documents.

Implementations must make ``update_fields`` a single atomic, field-level
write: only the given fields change, everything else keeps whatever a
concurrent writer put there.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any
from uuid import UUID

from assettrack.schemas.asset import AssetFilter, AssetRecord


class Collection(str, Enum):
    """Entities an asset may reference."""
    organizations = "organizations"
    buildings = "buildings"
    floors = "floors"
    departments = "departments"
    admin_users = "admin_users"


# Columns that may be written through update_fields
WRITABLE_FIELDS = frozenset({
    "name",
    "type",
    "status",
    "building_id",
    "floor_id",
    "location",
    "department_id",
    "battery_level",
    "last_seen",
    "map_coordinates",
    "description",
    "tags",
    "is_active",
    "updated_by",
})

GROUPABLE_FIELDS = frozenset({"status", "type"})


class AssetStore(ABC):

    @abstractmethod
    async def find(
        self,
        query: AssetFilter,
        *,
        skip: int = 0,
        limit: int | None = None,
    ) -> tuple[list[AssetRecord], int]:
        """Matching records sorted by last_seen desc (nulls last), then
        created_at desc, plus the total match count before paging."""

    @abstractmethod
    async def find_by_id(self, asset_id: UUID) -> AssetRecord | None:
        ...

    @abstractmethod
    async def insert(self, doc: dict[str, Any]) -> AssetRecord:
        """Persist a new asset. The store assigns id, created_at and updated_at."""

    @abstractmethod
    async def update_fields(
        self,
        asset_id: UUID,
        fields: dict[str, Any],
        *,
        if_match: dict[str, Any] | None = None,
    ) -> AssetRecord | None:
        """Set ``fields`` (and updated_at) on one asset.

        Returns None when the asset does not exist or when any ``if_match``
        field no longer equals the given value.
        """

    @abstractmethod
    async def exists_by_id(self, collection: Collection, entity_id: UUID) -> bool:
        ...

    @abstractmethod
    async def count_by(self, query: AssetFilter, field: str) -> dict[str, int]:
        """Number of matching assets per distinct value of ``field``."""

    async def close(self) -> None:
        """Release connections. No-op by default."""


def check_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields not writable: {', '.join(sorted(unknown))}")
