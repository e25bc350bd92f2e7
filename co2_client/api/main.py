"""
CO2 Client - API Server

Provides endpoints for:
- Current reading and connection status
- Reading history, statistics and chart series
- Monitor settings (validated here before they reach the settings store)
- Manual reconnect
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Awaitable, Callable

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from co2_client.core.config import settings
from co2_client.core.database import create_engine, create_session_maker, init_db
from co2_client.models.settings import (
    MonitorSettings,
    MonitorSettingsUpdate,
    SettingsValidationError,
    validate_settings,
)
from co2_client.mqtt.main import TelemetryContext
from co2_client.services.alerts import AIR_QUALITY_DESCRIPTIONS, classify_air_quality
from co2_client.services.analytics import CHART_WINDOW, STATS_WINDOW, chart_series, summarize_history
from co2_client.services.history import HISTORY_LIMIT
from co2_client.services.notifier import build_notifier
from co2_client.services.storage import KeyValueStore

logger = logging.getLogger(__name__)

VERSION = "1.0.0"

ContextFactory = Callable[[], Awaitable[tuple[TelemetryContext, Callable[[], Awaitable[None]]]]]


async def default_context() -> tuple[TelemetryContext, Callable[[], Awaitable[None]]]:
    """Context backed by the configured database and notifier."""
    engine = create_engine(settings.database_url)
    await init_db(engine)
    notifier = build_notifier(settings)
    context = TelemetryContext(KeyValueStore(create_session_maker(engine)), notifier)

    async def cleanup():
        if hasattr(notifier, "close"):
            await notifier.close()
        await engine.dispose()

    return context, cleanup


router = APIRouter()


def get_context(request: Request) -> TelemetryContext:
    return request.app.state.context


# ==================== READINGS ====================

@router.get("/api/reading")
async def get_current_reading(request: Request):
    """Latest reading with its air quality level."""
    context = get_context(request)
    reading = context.current_reading

    air_quality = None
    if reading is not None:
        level = classify_air_quality(reading, context.settings)
        air_quality = {
            "level": level.value,
            "description": AIR_QUALITY_DESCRIPTIONS[level],
        }

    return {
        "reading": reading.model_dump() if reading else None,
        "air_quality": air_quality,
        "connection_state": context.connection_state.value,
    }


@router.get("/api/history")
async def get_history(request: Request, last: int | None = Query(None, ge=1, le=HISTORY_LIMIT)):
    """Stored readings, oldest first."""
    context = get_context(request)
    readings = context.history_buffer.slice(last) if last else context.history
    return {
        "count": len(readings),
        "readings": [r.model_dump() for r in readings],
    }


@router.get("/api/history/stats")
async def get_history_stats(request: Request, window: int = Query(STATS_WINDOW, ge=1, le=HISTORY_LIMIT)):
    """Average / min / max and threshold split over recent readings."""
    context = get_context(request)
    stats = summarize_history(context.history, context.settings, window=window)
    return {"stats": asdict(stats) if stats else None}


@router.get("/api/history/chart")
async def get_history_chart(request: Request, window: int = Query(CHART_WINDOW, ge=1, le=HISTORY_LIMIT)):
    """Per-channel series for the trend chart."""
    return chart_series(get_context(request).history, window=window)


# ==================== SETTINGS ====================

@router.get("/api/settings")
async def get_monitor_settings(request: Request):
    return get_context(request).settings.to_record()


@router.patch("/api/settings")
async def update_monitor_settings(request: Request, update: MonitorSettingsUpdate):
    """Apply a partial settings change after checking the business rules."""
    context = get_context(request)
    changes = update.changes()

    try:
        candidate = MonitorSettings.model_validate({**context.settings.model_dump(), **changes})
        validate_settings(candidate)
    except (SettingsValidationError, ValidationError) as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    updated = await context.update_settings(changes)
    logger.info(f"⚙️ Settings updated: {changes}")
    return updated.to_record()


# ==================== CONNECTION ====================

@router.post("/api/reconnect", status_code=202)
async def reconnect(request: Request):
    """Drop the broker session and connect again."""
    get_context(request).reconnect()
    return {"status": "reconnecting"}


# ==================== HEALTH CHECK ====================

@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    context = get_context(request)
    return {
        "status": "ok",
        "version": VERSION,
        "connection_state": context.connection_state.value,
        "history_size": len(context.history_buffer),
    }


# ==================== APP ====================

def create_app(context_factory: ContextFactory = default_context) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context, cleanup = await context_factory()
        await context.start()
        app.state.context = context
        try:
            yield
        finally:
            await context.close()
            await cleanup()

    app = FastAPI(
        title="CO2 Client API",
        description="Live CO2 readings, history and alert settings",
        version=VERSION,
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()


def run():
    import uvicorn

    logging.basicConfig(level=settings.log_level)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


# ==================== MAIN ====================

if __name__ == "__main__":
    run()
