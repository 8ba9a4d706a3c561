"""
Negotiation coordinator: the offer/answer state machine.

The coordinator consumes :mod:`clive.signaling.events` and returns the list of
actions the controller must carry out, in order.  It owns the
:class:`~clive.signaling.session.Session` and never touches the transport or
the engine directly, so every transition can be exercised without either.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List

from ..errors import ProtocolViolation, UnknownType
from . import events as ev
from .messages import Answer, Candidate, Offer, PeerReady, Role
from .session import NegotiationState, Session

LOG = logging.getLogger(__name__)

State = NegotiationState
Actions = List[ev.Action]


class Coordinator:
    """
    Drive one session through offer/answer negotiation.

    ``handle`` is serialised with a lock: engine callbacks may come from other
    threads, and exactly one event is processed to completion at a time.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._lock = threading.RLock()
        self._handlers: Dict[type, Callable[..., Actions]] = {
            ev.TransportOpened: self._on_transport_opened,
            ev.TransportClosed: self._on_transport_closed,
            ev.TransportFailed: self._on_transport_failed,
            ev.MessageReceived: self._on_message,
            ev.MessageRejected: self._on_message_rejected,
            ev.DescriptionSent: self._on_description_sent,
            ev.NegotiationNeeded: self._on_negotiation_needed,
            ev.OfferCreated: self._on_offer_created,
            ev.AnswerCreated: self._on_answer_created,
            ev.LocalCandidate: self._on_local_candidate,
            ev.NegotiationFailed: self._on_negotiation_failed,
            ev.NegotiationTimedOut: self._on_timed_out,
        }

    # ------------------------------------------------------------------ public API

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> NegotiationState:
        return self._session.state

    def handle(self, event: ev.Event) -> Actions:
        handler = self._handlers.get(type(event))
        if handler is None:
            raise TypeError(f"unsupported coordinator event {event!r}")
        with self._lock:
            if self._session.state.is_terminal:
                LOG.debug("Session is %s; ignoring %s", self._session.state.value, event)
                return []
            previous = self._session.state
            actions = handler(event)
            if self._session.state is not previous:
                LOG.debug(
                    "Negotiation state %s -> %s (round %d)",
                    previous.value,
                    self._session.state.value,
                    self._session.round,
                )
            return actions

    # ------------------------------------------------------------------ transport

    def _on_transport_opened(self, _event: ev.TransportOpened) -> Actions:
        session = self._session
        session.transport_open = True
        if session.state is not State.IDLE:
            LOG.debug("Duplicate transport open ignored in %s", session.state.value)
            return []
        session.state = State.AWAITING_PEER
        if session.is_caller:
            LOG.info("Caller mode: waiting for 'peer-ready' from the signaling server")
        else:
            LOG.info("Callee mode: waiting for an offer from the remote peer")
        return []

    def _on_transport_closed(self, event: ev.TransportClosed) -> Actions:
        self._session.transport_open = False
        reason = event.reason or "signaling connection closed"
        return self._terminate(State.CLOSED, reason, failed=False)

    def _on_transport_failed(self, event: ev.TransportFailed) -> Actions:
        self._session.transport_open = False
        return self._terminate(State.CLOSED, f"signaling error: {event.message}", failed=True)

    # ------------------------------------------------------------------ inbound

    def _on_message(self, event: ev.MessageReceived) -> Actions:
        message = event.message
        try:
            if isinstance(message, PeerReady):
                return self._on_peer_ready()
            if isinstance(message, Offer):
                return self._on_remote_offer(message)
            if isinstance(message, Answer):
                return self._on_remote_answer(message)
            if isinstance(message, Candidate):
                return self._on_remote_candidate(message)
        except ProtocolViolation as exc:
            LOG.warning("Dropping message: %s", exc)
            return []
        raise TypeError(f"unsupported signaling message {message!r}")

    def _on_message_rejected(self, event: ev.MessageRejected) -> Actions:
        if isinstance(event.error, UnknownType):
            LOG.info("Ignoring signaling message: %s", event.error)
        else:
            LOG.warning("Dropping undecodable signaling message: %s", event.error)
        return []

    def _on_peer_ready(self) -> Actions:
        session = self._session
        if session.state is not State.AWAITING_PEER:
            LOG.debug("peer-ready ignored in %s", session.state.value)
            return []
        if not session.is_caller:
            LOG.debug("peer-ready ignored; callee waits for the offer")
            return []
        LOG.info("Peer ready, initiating negotiation")
        return self._begin_offer()

    def _on_remote_offer(self, offer: Offer) -> Actions:
        session = self._session
        if session.role is Role.CALLER:
            raise ProtocolViolation("caller received an offer")
        if session.state not in (State.AWAITING_PEER, State.NEGOTIATED):
            raise ProtocolViolation(f"offer out of sequence in {session.state.value}")

        round_ = session.start_round()
        session.state = State.ANSWER_CREATING
        session.remote_applied = True
        LOG.info("Setting remote offer (round %d), creating answer", round_)
        actions: Actions = [
            ev.ArmTimer(round_),
            ev.SetRemoteDescription(ev.DescriptionKind.OFFER, offer.sdp),
        ]
        actions.extend(self._drain_candidates())
        actions.append(ev.CreateAnswer())
        return actions

    def _on_remote_answer(self, answer: Answer) -> Actions:
        session = self._session
        if session.role is Role.CALLEE:
            raise ProtocolViolation("callee received an answer")
        if session.state not in (State.OFFER_SENT, State.AWAITING_ANSWER) or session.remote_applied:
            raise ProtocolViolation(f"answer out of sequence in {session.state.value}")

        session.remote_applied = True
        session.state = State.NEGOTIATED
        LOG.info("Setting remote answer (round %d)", session.round)
        actions: Actions = [ev.SetRemoteDescription(ev.DescriptionKind.ANSWER, answer.sdp)]
        actions.extend(self._drain_candidates())
        actions.append(ev.CancelTimer())
        return actions

    def _on_remote_candidate(self, candidate: Candidate) -> Actions:
        session = self._session
        if session.remote_applied:
            LOG.debug("Adding remote ICE candidate (mline %d)", candidate.sdp_mline_index)
            return [ev.AddIceCandidate(candidate.candidate, candidate.sdp_mline_index)]
        session.enqueue_candidate(candidate)
        LOG.debug(
            "Queued remote ICE candidate until the remote description is set (%d pending)",
            len(session.pending_candidates),
        )
        return []

    def _drain_candidates(self) -> Actions:
        drained = self._session.drain_candidates()
        if drained:
            LOG.info("Applying %d queued remote ICE candidate(s)", len(drained))
        return [ev.AddIceCandidate(item.candidate, item.sdp_mline_index) for item in drained]

    # ------------------------------------------------------------------ engine

    def _on_negotiation_needed(self, _event: ev.NegotiationNeeded) -> Actions:
        session = self._session
        if not session.is_caller:
            LOG.debug("negotiation-needed ignored; callee only answers")
            return []
        if session.state not in (State.AWAITING_PEER, State.NEGOTIATED):
            LOG.debug("negotiation-needed ignored in %s", session.state.value)
            return []
        LOG.info("Negotiation needed, creating offer")
        return self._begin_offer()

    def _begin_offer(self) -> Actions:
        round_ = self._session.start_round()
        self._session.state = State.OFFER_CREATING
        return [ev.ArmTimer(round_), ev.CreateOffer()]

    def _on_offer_created(self, event: ev.OfferCreated) -> Actions:
        session = self._session
        if session.state is not State.OFFER_CREATING:
            LOG.warning("Discarding offer created in %s", session.state.value)
            return []
        session.state = State.OFFER_SENT
        return [
            ev.SetLocalDescription(ev.DescriptionKind.OFFER, event.sdp),
            ev.Send(Offer(sdp=event.sdp)),
        ]

    def _on_answer_created(self, event: ev.AnswerCreated) -> Actions:
        session = self._session
        if session.state is not State.ANSWER_CREATING:
            LOG.warning("Discarding answer created in %s", session.state.value)
            return []
        session.state = State.ANSWER_SENT
        return [
            ev.SetLocalDescription(ev.DescriptionKind.ANSWER, event.sdp),
            ev.Send(Answer(sdp=event.sdp)),
        ]

    def _on_description_sent(self, event: ev.DescriptionSent) -> Actions:
        session = self._session
        if event.kind is ev.DescriptionKind.OFFER and session.state is State.OFFER_SENT:
            session.state = State.AWAITING_ANSWER
            return []
        if event.kind is ev.DescriptionKind.ANSWER and session.state is State.ANSWER_SENT:
            session.state = State.NEGOTIATED
            LOG.info("Answer sent; negotiation complete (round %d)", session.round)
            return [ev.CancelTimer()]
        return []

    def _on_local_candidate(self, event: ev.LocalCandidate) -> Actions:
        if not self._session.transport_open:
            LOG.debug("Transport not open; dropping local ICE candidate")
            return []
        return [ev.Send(Candidate(candidate=event.candidate, sdp_mline_index=event.sdp_mline_index))]

    def _on_negotiation_failed(self, event: ev.NegotiationFailed) -> Actions:
        return self._terminate(State.FAILED, f"negotiation failed: {event.message}", failed=True)

    def _on_timed_out(self, event: ev.NegotiationTimedOut) -> Actions:
        session = self._session
        if event.round != session.round or session.state in (State.NEGOTIATED, State.AWAITING_PEER):
            return []
        return self._terminate(
            State.FAILED,
            f"negotiation round {event.round} timed out in {session.state.value}",
            failed=True,
        )

    # ------------------------------------------------------------------ helpers

    def _terminate(self, state: NegotiationState, reason: str, *, failed: bool) -> Actions:
        session = self._session
        session.state = state
        session.terminal_reason = reason
        session.pending_candidates.clear()
        if failed:
            LOG.error("Session %s: %s", state.value, reason)
        else:
            LOG.info("Session %s: %s", state.value, reason)
        return [ev.CancelTimer(), ev.Shutdown(failed=failed, reason=reason)]


__all__ = ["Coordinator"]
