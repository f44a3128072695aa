"""FastAPI application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from assettrack.api.assets import router as assets_router
from assettrack.config import Settings, get_settings
from assettrack.database import close_pool, get_pool, get_postgrest, init_schema
from assettrack.services.coordinator import AssetUpdateCoordinator
from assettrack.store.base import AssetStore
from assettrack.store.memory import InMemoryAssetStore
from assettrack.store.postgres import PostgresAssetStore

logger = logging.getLogger("assettrack.live")


# ── Background task: marks silent assets offline every N seconds ──


async def _sweep_stale_assets(coordinator: AssetUpdateCoordinator, interval: int):
    """Infinite loop that re-derives status for assets that stopped reporting."""
    while True:
        await asyncio.sleep(interval)
        try:
            await coordinator.sweep_stale_assets()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Staleness sweep failed")


async def _build_store(settings: Settings) -> AssetStore:
    if settings.STORE_BACKEND == "memory":
        logger.warning("Using in-memory asset store; data is lost on restart")
        return InMemoryAssetStore()
    if not settings.SUPABASE_DB_URL or not settings.SUPABASE_URL:
        raise RuntimeError(
            "STORE_BACKEND=postgres requires SUPABASE_URL, SUPABASE_SERVICE_KEY and SUPABASE_DB_URL"
        )
    await init_schema()
    return PostgresAssetStore(await get_pool(), get_postgrest())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    settings: Settings = app.state.settings
    sweep_task: asyncio.Task | None = None

    # Startup: wire the coordinator unless one was injected (tests)
    if getattr(app.state, "coordinator", None) is None:
        store = await _build_store(settings)
        app.state.coordinator = AssetUpdateCoordinator(
            store,
            low_battery_threshold=settings.LOW_BATTERY_THRESHOLD,
            offline_after=timedelta(minutes=settings.OFFLINE_AFTER_MINUTES),
        )
        logger.info("Asset store ready (%s)", settings.STORE_BACKEND)

    if settings.STALENESS_SWEEP_SECONDS > 0:
        sweep_task = asyncio.create_task(
            _sweep_stale_assets(app.state.coordinator, settings.STALENESS_SWEEP_SECONDS)
        )
        logger.info("Staleness sweep started (every %ds)", settings.STALENESS_SWEEP_SECONDS)
    yield
    # Shutdown: cancel the sweep and close connections
    if sweep_task:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass
    await app.state.coordinator.store.close()
    await close_pool()


def create_app(
    settings: Settings | None = None,
    coordinator: AssetUpdateCoordinator | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.getLogger("assettrack").setLevel(settings.LOG_LEVEL.upper())

    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.coordinator = coordinator

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    app.include_router(assets_router, prefix="/api/v1")
    return app


app = create_app()
