import json

import asyncpg
from postgrest import AsyncPostgrestClient
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from assettrack.config import get_settings
from assettrack.models import Base

# ---------- Supabase PostgREST client ----------

_postgrest_client: AsyncPostgrestClient | None = None


def get_postgrest() -> AsyncPostgrestClient:
    """Get or create the PostgREST client (uses Supabase REST API with service_role key)."""
    global _postgrest_client
    if _postgrest_client is None:
        settings = get_settings()
        _postgrest_client = AsyncPostgrestClient(
            f"{settings.SUPABASE_URL}/rest/v1",
            headers={
                "apikey": settings.SUPABASE_SERVICE_KEY,
                "Authorization": f"Bearer {settings.SUPABASE_SERVICE_KEY}",
            },
        )
    return _postgrest_client


# ---------- Direct asyncpg connection pool ----------

_pool: asyncpg.Pool | None = None


def _get_raw_pg_url() -> str:
    """Convert SQLAlchemy-style URL to plain postgres:// for asyncpg."""
    settings = get_settings()
    url = settings.SUPABASE_DB_URL
    # asyncpg needs postgresql:// not postgresql+asyncpg://
    return url.replace("postgresql+asyncpg://", "postgresql://")


async def _init_connection(conn: asyncpg.Connection) -> None:
    # map_coordinates is jsonb; exchange it as dicts
    await conn.set_type_codec(
        "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
    )


async def get_pool() -> asyncpg.Pool:
    """Get or create the asyncpg connection pool."""
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            _get_raw_pg_url(),
            min_size=2,
            max_size=5,  # Stay within Supabase free-tier connection limits
            # Supabase uses PgBouncer in transaction mode, which does not
            # support prepared statements. Disable the statement cache.
            statement_cache_size=0,
            command_timeout=10,
            init=_init_connection,
        )
    return _pool


async def close_pool() -> None:
    """Close the asyncpg pool and the PostgREST client (call on app shutdown)."""
    global _pool, _postgrest_client
    if _pool is not None:
        await _pool.close()
        _pool = None
    if _postgrest_client is not None:
        await _postgrest_client.aclose()
        _postgrest_client = None


# ---------- Schema ----------


async def init_schema() -> None:
    """Create missing tables and indexes from the SQLAlchemy models."""
    dialect = postgresql.dialect()
    pool = await get_pool()
    async with pool.acquire() as conn:
        async with conn.transaction():
            for table in Base.metadata.sorted_tables:
                await conn.execute(
                    str(CreateTable(table, if_not_exists=True).compile(dialect=dialect))
                )
                for index in table.indexes:
                    await conn.execute(
                        str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect))
                    )
