"""PostgreSQL asset store.

Asset documents and grouped counts go through asyncpg (raw SQL, since
PostgREST does not support GROUP BY). Existence checks on referenced
tables are simple single-row lookups and use the Supabase PostgREST API.
"""

import asyncio
import functools
import logging
import uuid
from datetime import datetime, timezone

import asyncpg
import httpx
from postgrest import AsyncPostgrestClient
from postgrest.exceptions import APIError

from assettrack.errors import StoreError
from assettrack.schemas.asset import AssetFilter, AssetRecord
from assettrack.store.base import (
    AssetStore,
    Collection,
    GROUPABLE_FIELDS,
    WRITABLE_FIELDS,
    check_fields,
)

logger = logging.getLogger(__name__)

COLUMNS = (
    "id, organization_id, name, type, status, building_id, floor_id, location, "
    "department_id, battery_level, last_seen, map_coordinates, description, tags, "
    "is_active, created_by, updated_by, created_at, updated_at"
)

INSERTABLE_FIELDS = WRITABLE_FIELDS | {"organization_id", "created_by"}


def _store_errors(func):
    """Re-raise driver and transport failures as StoreError."""
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (
            asyncpg.PostgresError,
            asyncpg.InterfaceError,
            APIError,
            httpx.HTTPError,
            asyncio.TimeoutError,
            OSError,
        ) as exc:
            logger.error("Asset store %s failed: %s", func.__name__, exc)
            raise StoreError(f"{func.__name__} failed: {exc}") from exc
    return wrapper


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_where(query: AssetFilter, start: int = 1) -> tuple[str, list]:
    """Translate a filter into a WHERE clause with $n placeholders from ``start``."""
    clauses: list[str] = []
    args: list = []

    def param(value) -> str:
        args.append(value)
        return f"${start + len(args) - 1}"

    for field in ("organization_id", "building_id", "floor_id", "department_id"):
        value = getattr(query, field)
        if value is not None:
            clauses.append(f"{field} = {param(value)}")

    types = query.types()
    if types:
        clauses.append(f"type = ANY({param([t.value for t in types])}::text[])")

    statuses = query.statuses()
    if statuses:
        clauses.append(f"status = ANY({param([s.value for s in statuses])}::text[])")

    if query.is_active is not None:
        clauses.append(f"is_active = {param(query.is_active)}")

    if query.last_seen_before is not None:
        clauses.append(f"last_seen < {param(query.last_seen_before)}")

    if query.search:
        p = param(f"%{escape_like(query.search)}%")
        clauses.append(
            f"(name ILIKE {p} OR location ILIKE {p} OR description ILIKE {p}"
            f" OR EXISTS (SELECT 1 FROM unnest(tags) AS tag WHERE tag ILIKE {p}))"
        )

    return " AND ".join(clauses) or "TRUE", args


class PostgresAssetStore(AssetStore):

    def __init__(self, pool: asyncpg.Pool, postgrest: AsyncPostgrestClient):
        self._pool = pool
        self._postgrest = postgrest

    @_store_errors
    async def find(self, query, *, skip=0, limit=None):
        where, args = build_where(query)
        n = len(args)
        rows = await self._pool.fetch(
            f"""
            SELECT {COLUMNS}
            FROM assets
            WHERE {where}
            ORDER BY last_seen DESC NULLS LAST, created_at DESC
            OFFSET ${n + 1} LIMIT ${n + 2}
            """,
            *args, skip, limit,
        )
        total = await self._pool.fetchval(
            f"SELECT COUNT(*)::int FROM assets WHERE {where}", *args
        )
        return [AssetRecord.model_validate(dict(r)) for r in rows], total

    @_store_errors
    async def find_by_id(self, asset_id):
        row = await self._pool.fetchrow(
            f"SELECT {COLUMNS} FROM assets WHERE id = $1", asset_id
        )
        return AssetRecord.model_validate(dict(row)) if row else None

    @_store_errors
    async def insert(self, doc):
        unknown = set(doc) - INSERTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not insertable: {', '.join(sorted(unknown))}")
        now = datetime.now(timezone.utc)
        values = {**doc, "id": uuid.uuid4(), "created_at": now, "updated_at": now}
        columns = list(values)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO assets ({", ".join(columns)})
            VALUES ({placeholders})
            RETURNING {COLUMNS}
            """,
            *values.values(),
        )
        return AssetRecord.model_validate(dict(row))

    @_store_errors
    async def update_fields(self, asset_id, fields, *, if_match=None):
        check_fields(fields)
        if if_match:
            check_fields(if_match)
        args: list = [asset_id]
        sets = []
        for column, value in fields.items():
            args.append(value)
            sets.append(f"{column} = ${len(args)}")
        sets.append("updated_at = now()")

        guards = ["id = $1"]
        for column, value in (if_match or {}).items():
            args.append(value)
            guards.append(f"{column} IS NOT DISTINCT FROM ${len(args)}")

        row = await self._pool.fetchrow(
            f"""
            UPDATE assets
            SET {", ".join(sets)}
            WHERE {" AND ".join(guards)}
            RETURNING {COLUMNS}
            """,
            *args,
        )
        return AssetRecord.model_validate(dict(row)) if row else None

    @_store_errors
    async def exists_by_id(self, collection, entity_id):
        response = await (
            self._postgrest.from_(Collection(collection).value)
            .select("id")
            .eq("id", str(entity_id))
            .limit(1)
            .execute()
        )
        return bool(response.data)

    @_store_errors
    async def count_by(self, query, field):
        if field not in GROUPABLE_FIELDS:
            raise ValueError(f"Cannot group by {field}")
        where, args = build_where(query)
        rows = await self._pool.fetch(
            f"""
            SELECT {field} AS value, COUNT(*)::int AS count
            FROM assets
            WHERE {where}
            GROUP BY {field}
            """,
            *args,
        )
        return {r["value"]: r["count"] for r in rows}
