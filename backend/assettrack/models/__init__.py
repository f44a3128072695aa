from assettrack.models.asset import Asset
from assettrack.models.base import Base
from assettrack.models.references import (
    AdminUser,
    Building,
    Department,
    Floor,
    Organization,
)

__all__ = [
    "AdminUser",
    "Asset",
    "Base",
    "Building",
    "Department",
    "Floor",
    "Organization",
]
