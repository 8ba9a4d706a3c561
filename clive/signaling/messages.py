"""
Signaling vocabulary: roles, the session endpoint and the message variants.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union
from urllib.parse import quote


class Role(str, Enum):
    """Which side of the call initiates negotiation."""

    CALLER = "caller"
    CALLEE = "callee"

    @classmethod
    def from_flag(cls, caller: bool) -> "Role":
        return cls.CALLER if caller else cls.CALLEE


@dataclass(frozen=True, slots=True)
class SessionEndpoint:
    """
    Signaling server address plus the room both peers join.
    """

    server: str
    room: str

    @property
    def url(self) -> str:
        return f"ws://{self.server}/ws?room={quote(self.room, safe='')}"


@dataclass(frozen=True, slots=True)
class PeerReady:
    """The relay reports that another peer is present in the room."""


@dataclass(frozen=True, slots=True)
class Offer:
    sdp: str


@dataclass(frozen=True, slots=True)
class Answer:
    sdp: str


@dataclass(frozen=True, slots=True)
class Candidate:
    """Serialisable ICE candidate container."""

    candidate: str
    sdp_mline_index: int = 0


SignalingMessage = Union[PeerReady, Offer, Answer, Candidate]

__all__ = [
    "Answer",
    "Candidate",
    "Offer",
    "PeerReady",
    "Role",
    "SessionEndpoint",
    "SignalingMessage",
]
