"""
Media side: the negotiation engine interface and its webrtcbin implementation.
"""

from __future__ import annotations

from .engine import EngineListener, NegotiationEngine, SessionDescription
from .media import MediaProfile
from .webrtcbin import WebRTCBinEngine

__all__ = [
    "EngineListener",
    "MediaProfile",
    "NegotiationEngine",
    "SessionDescription",
    "WebRTCBinEngine",
]
