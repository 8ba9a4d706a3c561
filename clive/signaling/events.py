"""
Inputs and outputs of the negotiation coordinator.

Events describe something that happened on the transport or in the engine.
Actions describe what the controller must do next; the coordinator itself
never performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..errors import DecodeError
from .messages import SignalingMessage


class DescriptionKind(str, Enum):
    OFFER = "offer"
    ANSWER = "answer"


# ---------------------------------------------------------------------- events


@dataclass(frozen=True, slots=True)
class TransportOpened:
    pass


@dataclass(frozen=True, slots=True)
class TransportClosed:
    reason: str = ""


@dataclass(frozen=True, slots=True)
class TransportFailed:
    message: str


@dataclass(frozen=True, slots=True)
class MessageReceived:
    message: SignalingMessage


@dataclass(frozen=True, slots=True)
class MessageRejected:
    """An inbound frame that failed to decode."""

    error: DecodeError


@dataclass(frozen=True, slots=True)
class DescriptionSent:
    """The controller handed the local offer/answer to the transport."""

    kind: DescriptionKind


@dataclass(frozen=True, slots=True)
class NegotiationNeeded:
    pass


@dataclass(frozen=True, slots=True)
class OfferCreated:
    sdp: str


@dataclass(frozen=True, slots=True)
class AnswerCreated:
    sdp: str


@dataclass(frozen=True, slots=True)
class LocalCandidate:
    candidate: str
    sdp_mline_index: int


@dataclass(frozen=True, slots=True)
class NegotiationFailed:
    message: str


@dataclass(frozen=True, slots=True)
class NegotiationTimedOut:
    round: int


Event = Union[
    TransportOpened,
    TransportClosed,
    TransportFailed,
    MessageReceived,
    MessageRejected,
    DescriptionSent,
    NegotiationNeeded,
    OfferCreated,
    AnswerCreated,
    LocalCandidate,
    NegotiationFailed,
    NegotiationTimedOut,
]


# --------------------------------------------------------------------- actions


@dataclass(frozen=True, slots=True)
class CreateOffer:
    pass


@dataclass(frozen=True, slots=True)
class CreateAnswer:
    pass


@dataclass(frozen=True, slots=True)
class SetLocalDescription:
    kind: DescriptionKind
    sdp: str


@dataclass(frozen=True, slots=True)
class SetRemoteDescription:
    kind: DescriptionKind
    sdp: str


@dataclass(frozen=True, slots=True)
class AddIceCandidate:
    candidate: str
    sdp_mline_index: int


@dataclass(frozen=True, slots=True)
class Send:
    message: SignalingMessage


@dataclass(frozen=True, slots=True)
class ArmTimer:
    round: int


@dataclass(frozen=True, slots=True)
class CancelTimer:
    pass


@dataclass(frozen=True, slots=True)
class Shutdown:
    """The session reached Closed or Failed; end the run loop."""

    failed: bool
    reason: str


Action = Union[
    CreateOffer,
    CreateAnswer,
    SetLocalDescription,
    SetRemoteDescription,
    AddIceCandidate,
    Send,
    ArmTimer,
    CancelTimer,
    Shutdown,
]
