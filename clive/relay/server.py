"""
FastAPI application for the signaling relay.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, WebSocket
from pydantic import BaseModel

from .. import __version__
from .rooms import DEFAULT_QUEUE_SIZE, DEFAULT_ROOM, RelayPeer, RoomRegistry

LOG = logging.getLogger(__name__)


class HealthStatus(BaseModel):
    status: str = "ok"


def create_app(
    registry: Optional[RoomRegistry] = None,
    *,
    queue_size: int = DEFAULT_QUEUE_SIZE,
) -> FastAPI:
    rooms = registry or RoomRegistry()

    app = FastAPI(title="clive signaling relay", version=__version__)
    app.state.rooms = rooms

    @app.websocket("/ws")
    async def relay_endpoint(websocket: WebSocket, room: str = DEFAULT_ROOM) -> None:
        peer = RelayPeer(websocket, room or DEFAULT_ROOM, queue_size=queue_size)
        await peer.run(rooms)

    @app.get("/healthz", response_model=HealthStatus)
    async def healthz() -> HealthStatus:
        return HealthStatus()

    @app.get("/rooms", response_model=Dict[str, int])
    async def list_rooms() -> Dict[str, int]:
        return rooms.snapshot()

    return app


__all__ = ["HealthStatus", "create_app"]
