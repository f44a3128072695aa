"""Status derivation for tracked assets.

Pure functions only: no I/O, no clock reads. Callers pass ``now``.

Priority order:
    1. battery known and <= threshold      -> low-battery (wins over staleness)
    2. was low-battery, battery now above  -> fall through to staleness
    3. last_seen known and older than TTL  -> offline
    4. otherwise                           -> online

An unknown battery never changes status on its own, and an asset that has
never been seen (``last_seen is None``) is not forced offline.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from assettrack.schemas.asset import AssetStatus

LOW_BATTERY_THRESHOLD = 20
OFFLINE_AFTER = timedelta(minutes=10)


def is_stale(
    last_seen: datetime | None,
    now: datetime,
    offline_after: timedelta = OFFLINE_AFTER,
) -> bool:
    """True when the asset was seen, but longer ago than ``offline_after``."""
    return last_seen is not None and now - last_seen > offline_after


def derive_status(
    current_status: AssetStatus,
    battery_level: int | None,
    last_seen: datetime | None,
    now: datetime,
    *,
    low_battery_threshold: int = LOW_BATTERY_THRESHOLD,
    offline_after: timedelta = OFFLINE_AFTER,
) -> AssetStatus:
    """Compute the operational status from battery and staleness signals."""
    if battery_level is not None and battery_level <= low_battery_threshold:
        return AssetStatus.low_battery

    if current_status == AssetStatus.low_battery and battery_level is None:
        return AssetStatus.low_battery

    if last_seen is None:
        # Never observed: nothing says offline. A recovered battery still
        # clears low-battery.
        if current_status == AssetStatus.low_battery:
            return AssetStatus.online
        return current_status

    if is_stale(last_seen, now, offline_after):
        return AssetStatus.offline
    return AssetStatus.online


def sanitize_tags(tags: Iterable | None) -> list[str]:
    """Trim tags, drop empty and non-string entries, dedupe keeping first occurrence."""
    if not tags or isinstance(tags, str):
        return []
    unique: dict[str, None] = {}
    for tag in tags:
        if isinstance(tag, str):
            trimmed = tag.strip()
            if trimmed:
                unique.setdefault(trimmed, None)
    return list(unique)
