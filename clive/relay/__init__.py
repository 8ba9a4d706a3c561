"""
Room based websocket relay that peers meet through.
"""

from __future__ import annotations

from .rooms import RelayPeer, RoomRegistry
from .server import create_app

__all__ = ["RelayPeer", "RoomRegistry", "create_app"]
