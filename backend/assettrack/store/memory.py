"""In-process asset store for tests and local development."""

import asyncio
import copy
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID

from assettrack.schemas.asset import AssetFilter, AssetRecord, utc_now
from assettrack.store.base import AssetStore, Collection, GROUPABLE_FIELDS, check_fields


class InMemoryAssetStore(AssetStore):
    """Dict-backed store. Writes are serialized by a lock and callers only
    ever see copies, so a returned record is a consistent snapshot."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._docs: dict[UUID, dict[str, Any]] = {}
        self._refs: dict[Collection, set[UUID]] = defaultdict(set)
        self._lock = asyncio.Lock()

    def register(self, collection: Collection, entity_id: UUID | None = None) -> UUID:
        """Make a referenced entity exist. Returns its id."""
        entity_id = entity_id or uuid.uuid4()
        self._refs[Collection(collection)].add(entity_id)
        return entity_id

    async def find(self, query, *, skip=0, limit=None):
        docs = [d for d in self._docs.values() if _matches(d, query)]
        docs.sort(key=_sort_key)
        total = len(docs)
        end = None if limit is None else skip + limit
        return [_to_record(d) for d in docs[skip:end]], total

    async def find_by_id(self, asset_id):
        doc = self._docs.get(asset_id)
        return _to_record(doc) if doc is not None else None

    async def insert(self, doc):
        now = self._clock()
        stored = copy.deepcopy(doc)
        stored.update(id=uuid.uuid4(), created_at=now, updated_at=now)
        async with self._lock:
            self._docs[stored["id"]] = stored
        return _to_record(stored)

    async def update_fields(self, asset_id, fields, *, if_match=None):
        check_fields(fields)
        async with self._lock:
            doc = self._docs.get(asset_id)
            if doc is None:
                return None
            if if_match and any(doc.get(k) != v for k, v in if_match.items()):
                return None
            doc.update(copy.deepcopy(fields))
            doc["updated_at"] = self._clock()
            return _to_record(doc)

    async def exists_by_id(self, collection, entity_id):
        return entity_id in self._refs[Collection(collection)]

    async def count_by(self, query, field):
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group by {field}")
        return dict(Counter(d[field] for d in self._docs.values() if _matches(d, query)))


def _to_record(doc: dict[str, Any]) -> AssetRecord:
    return AssetRecord.model_validate(copy.deepcopy(doc))


def _sort_key(doc: dict[str, Any]):
    last_seen = doc.get("last_seen")
    return (
        last_seen is None,
        -last_seen.timestamp() if last_seen else 0.0,
        -doc["created_at"].timestamp(),
    )


def _matches(doc: dict[str, Any], query: AssetFilter) -> bool:
    for field in ("organization_id", "building_id", "floor_id", "department_id"):
        wanted = getattr(query, field)
        if wanted is not None and doc.get(field) != wanted:
            return False

    types = query.types()
    if types and doc["type"] not in {t.value for t in types}:
        return False

    statuses = query.statuses()
    if statuses and doc["status"] not in {s.value for s in statuses}:
        return False

    if query.is_active is not None and doc["is_active"] != query.is_active:
        return False

    if query.last_seen_before is not None:
        last_seen = doc.get("last_seen")
        if last_seen is None or last_seen >= query.last_seen_before:
            return False

    if query.search:
        needle = query.search.lower()
        haystack = [doc.get("name"), doc.get("location"), doc.get("description"), *doc.get("tags", [])]
        if not any(needle in value.lower() for value in haystack if value):
            return False

    return True
