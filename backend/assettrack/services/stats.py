"""Asset counts for dashboards.

Counts are taken from the persisted status. Status is not re-derived here,
so an asset that went silent since its last write still counts under its
last stored status.
"""

import asyncio

from assettrack.schemas.asset import AssetFilter, AssetStats, AssetStatus, AssetType, AssetTypeCounts
from assettrack.store.base import AssetStore


async def get_asset_stats(store: AssetStore, query: AssetFilter | None = None) -> AssetStats:
    """Status and type counts over the active assets matching ``query``."""
    query = (query or AssetFilter()).model_copy(update={"is_active": True})

    by_status, by_type = await asyncio.gather(
        store.count_by(query, "status"),
        store.count_by(query, "type"),
    )

    return AssetStats(
        total=sum(by_status.values()),
        online=by_status.get(AssetStatus.online.value, 0),
        offline=by_status.get(AssetStatus.offline.value, 0),
        low_battery=by_status.get(AssetStatus.low_battery.value, 0),
        by_type=AssetTypeCounts(
            **{t.value: by_type.get(t.value, 0) for t in AssetType}
        ),
    )
