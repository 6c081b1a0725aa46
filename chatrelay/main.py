# chatrelay/main.py

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chatrelay.core import state
from chatrelay.core.config import settings
from chatrelay.core.logging import setup_logging, get_logger
from chatrelay.api.routes import root, health, metrics, rooms
from chatrelay.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Ephemeral Chat Relay")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(rooms.router)

# WebSocket routes
app.include_router(websocket_module.router)

_sweeper: Optional[asyncio.Task] = None


async def sweep_pending_rooms(ttl_seconds: float, interval_seconds: float) -> None:
    """Periodically expire rooms that were created but never joined."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await state.room_registry.purge_stale_pending(ttl_seconds)
        except Exception:
            logger.exception("Pending room sweep failed")


@app.on_event("startup")
async def startup_event():
    global _sweeper
    logger.info("🚀 Chat relay starting (capacity %d per room)", settings.ROOM_CAPACITY)

    if settings.PENDING_ROOM_TTL_SECONDS > 0:
        _sweeper = asyncio.create_task(
            sweep_pending_rooms(settings.PENDING_ROOM_TTL_SECONDS, settings.PENDING_SWEEP_INTERVAL_SECONDS)
        )


@app.on_event("shutdown")
async def on_shutdown():
    global _sweeper
    if _sweeper is not None:
        _sweeper.cancel()
        try:
            await _sweeper
        except asyncio.CancelledError:
            pass
        _sweeper = None
    logger.info("Chat relay stopped")


def run() -> None:
    import uvicorn
    uvicorn.run("chatrelay.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
