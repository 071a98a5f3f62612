from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import weather_bridge.api.routes as routes_module

from .drivers.broadcast_ws import WebSocketHub
from .services.profiles import load_profiles
from .services.publisher import DualSinkPublisher
from .services.session import SessionManager
from .wiring import build_encoder, build_store, build_transport


logger = logging.getLogger(__name__)


# --- Singletons ---
hub = WebSocketHub(queue_size=settings.broadcast_queue_size)
store = build_store(settings)
publisher = DualSinkPublisher(channel=hub, store=store, encoder=build_encoder(settings))
manager = SessionManager(
    transport=build_transport(settings),
    channel=hub,
    publisher=publisher,
    profiles=load_profiles(settings.sensor_profiles_path or None),
    schema=settings.record_schema,
)


def get_manager() -> SessionManager:
    return manager


def get_hub() -> WebSocketHub:
    return hub


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info(
        "Starting %s (device_mode=%s store=%s schema=%s measurement_mode=%s)",
        settings.app_name, settings.device_mode, settings.store_backend,
        settings.record_schema, settings.measurement_mode,
    )

    if store is not None:
        await store.init()

    try:
        yield
    finally:
        await manager.close_all()
        if store is not None:
            await store.close()
        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_manager] = get_manager
app.dependency_overrides[routes_module.get_hub] = get_hub

app.include_router(api_router, prefix="/api")
