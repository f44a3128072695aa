"""Exceptions raised by the asset tracking core.

Routes map these to HTTP status codes; everything else propagates.
"""

from uuid import UUID


class AssetTrackingError(Exception):
    """Base class for all asset tracking errors."""


class ValidationError(AssetTrackingError):
    """Missing required field, out-of-range value or malformed patch."""


class NotFoundError(AssetTrackingError):
    """The requested asset does not exist."""


class ReferentialIntegrityError(NotFoundError):
    """A referenced entity (organization, building, ...) does not exist."""

    def __init__(self, collection: str, entity_id: UUID):
        self.collection = collection
        self.entity_id = entity_id
        super().__init__(f"{_LABELS.get(collection, collection)} not found")


class StoreError(AssetTrackingError):
    """Opaque failure from the record store (transport or storage)."""


_LABELS = {
    "organizations": "Organization",
    "buildings": "Building",
    "floors": "Floor plan",
    "departments": "Department",
    "admin_users": "User",
}
