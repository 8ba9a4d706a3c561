"""
Negotiation engine interface.

An engine owns the peer connection and the media it carries.  Requests such as
:meth:`NegotiationEngine.create_offer` complete asynchronously; results and
unsolicited events are reported to the bound :class:`EngineListener`, possibly
from a thread other than the caller's.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..signaling.events import DescriptionKind

LOG = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SessionDescription:
    kind: DescriptionKind
    sdp: str


class EngineListener:
    """
    Receiver of negotiation engine events.
    """

    def on_negotiation_needed(self) -> None:
        raise NotImplementedError

    def on_ice_candidate(self, candidate: str, mline_index: int) -> None:
        raise NotImplementedError

    def on_incoming_track(self, kind: str, handle: object) -> None:
        raise NotImplementedError

    def on_offer_created(self, sdp: str) -> None:
        raise NotImplementedError

    def on_answer_created(self, sdp: str) -> None:
        raise NotImplementedError

    def on_negotiation_error(self, message: str) -> None:
        raise NotImplementedError


class NegotiationEngine:
    """
    Base class for negotiation engines.

    Synchronous failures (for example an SDP blob that does not parse) raise
    :class:`~clive.errors.NegotiationError`; asynchronous ones are reported via
    ``on_negotiation_error``.
    """

    def __init__(self) -> None:
        self._listener: Optional[EngineListener] = None

    @property
    def listener(self) -> Optional[EngineListener]:
        return self._listener

    def bind(self, listener: EngineListener) -> None:
        self._listener = listener

    def start(self) -> None:
        """
        Bring the media pipeline up.  Engines may raise negotiation-needed
        once running.
        """

        raise NotImplementedError

    def stop(self) -> None:
        """
        Tear the media pipeline down.  Must be safe to call more than once.
        """

        raise NotImplementedError

    def create_offer(self) -> None:
        raise NotImplementedError

    def create_answer(self) -> None:
        raise NotImplementedError

    def set_local_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def set_remote_description(self, description: SessionDescription) -> None:
        raise NotImplementedError

    def add_ice_candidate(self, candidate: str, mline_index: int) -> None:
        raise NotImplementedError

    def attach_track(self, kind: str, handle: object) -> None:
        LOG.info("No media sink attached for incoming %s track", kind)
