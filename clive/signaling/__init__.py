"""
Signaling core: wire codec, negotiation state machine and transport adapter.
"""

from __future__ import annotations

from .codec import decode, encode
from .coordinator import Coordinator
from .messages import Answer, Candidate, Offer, PeerReady, Role, SessionEndpoint, SignalingMessage
from .session import NegotiationState, Session
from .transport import SignalingChannel, Transport, TransportListener, WebSocketTransport

__all__ = [
    "Answer",
    "Candidate",
    "Coordinator",
    "NegotiationState",
    "Offer",
    "PeerReady",
    "Role",
    "Session",
    "SessionEndpoint",
    "SignalingChannel",
    "SignalingMessage",
    "Transport",
    "TransportListener",
    "WebSocketTransport",
    "decode",
    "encode",
]
