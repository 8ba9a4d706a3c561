"""
clive: peer-to-peer WebRTC calls negotiated through a room relay.

The package is split into the signaling core (:mod:`clive.signaling`), the
media side (:mod:`clive.rtc`), the session controller that wires both together
and the small relay server in :mod:`clive.relay` that peers meet through.
"""

from __future__ import annotations

__version__ = "0.3.0"

__all__ = ["__version__"]
