from assettrack.store.base import AssetStore, Collection
from assettrack.store.memory import InMemoryAssetStore

__all__ = ["AssetStore", "Collection", "InMemoryAssetStore"]
