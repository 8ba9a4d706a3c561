"""
Session controller: wires the signaling channel, the coordinator and the
negotiation engine together for one call.

All events funnel through one asyncio queue consumed by a single dispatcher
task, so coordinator transitions run to completion one at a time.  Engine
callbacks may arrive on GStreamer threads and are marshalled onto the loop
with ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Callable, Dict, List, Optional

from .config import ClientConfig
from .errors import NegotiationError
from .rtc.engine import EngineListener, NegotiationEngine, SessionDescription
from .signaling import events as ev
from .signaling.coordinator import Coordinator
from .signaling.messages import Answer, Offer
from .signaling.session import NegotiationState, Session
from .signaling.transport import SignalingChannel, Transport, WebSocketTransport

LOG = logging.getLogger(__name__)


class SessionController(EngineListener):
    """
    Run one signaling session from connect to Closed or Failed.
    """

    def __init__(
        self,
        config: ClientConfig,
        engine: NegotiationEngine,
        transport: Optional[Transport] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.session = Session(role=config.role, endpoint=config.endpoint)
        self.coordinator = Coordinator(self.session)
        self.channel = SignalingChannel(
            transport or WebSocketTransport(open_timeout=config.open_timeout),
            self.post,
            queue_size=config.send_queue_size,
        )
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: Optional[asyncio.Queue[ev.Event]] = None
        self._done: Optional[asyncio.Event] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._engine_started = False
        self._shutdown: Optional[ev.Shutdown] = None
        self._performers: Dict[type, Callable[[Any], None]] = {
            ev.CreateOffer: self._create_offer,
            ev.CreateAnswer: self._create_answer,
            ev.SetLocalDescription: self._set_local_description,
            ev.SetRemoteDescription: self._set_remote_description,
            ev.AddIceCandidate: self._add_ice_candidate,
            ev.Send: self._send,
            ev.ArmTimer: self._arm_timer,
            ev.CancelTimer: self._cancel_timer,
            ev.Shutdown: self._finish,
        }

    @property
    def shutdown(self) -> Optional[ev.Shutdown]:
        return self._shutdown

    def describe(self) -> dict:
        return self.session.to_dict()

    # ------------------------------------------------------------------ lifecycle

    async def run(self) -> int:
        """
        Connect, negotiate and block until the session ends.

        Returns ``0`` when the session closed cleanly and ``1`` when the
        transport failed or negotiation failed.
        """

        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._done = asyncio.Event()
        self.engine.bind(self)

        endpoint = self.session.endpoint
        LOG.info(
            "Joining room '%s' on %s as %s",
            endpoint.room,
            endpoint.server,
            self.session.role.value,
        )
        dispatcher = asyncio.create_task(self._dispatch_loop(), name="clive-dispatcher")
        try:
            await self.channel.connect(endpoint.url)
            await self._done.wait()
        finally:
            self._cancel_timer()
            dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await dispatcher
            await self.channel.close()
            try:
                self.engine.stop()
            except Exception:  # pragma: no cover - defensive
                LOG.exception("Failed to stop negotiation engine cleanly.")

        shutdown = self._shutdown
        if shutdown is None:
            return 1
        LOG.info("Session finished: %s", shutdown.reason)
        return 1 if shutdown.failed else 0

    def post(self, event: ev.Event) -> None:
        """
        Queue ``event`` for the dispatcher.  Must be called on the loop thread.
        """

        if self._events is None:
            raise RuntimeError("session controller is not running")
        self._events.put_nowait(event)

    def stop(self, reason: str = "local shutdown") -> None:
        """
        Request a clean shutdown; safe to call from any thread.
        """

        self._post_threadsafe(ev.TransportClosed(reason))

    # ------------------------------------------------------------------ engine callbacks

    def on_negotiation_needed(self) -> None:
        self._post_threadsafe(ev.NegotiationNeeded())

    def on_ice_candidate(self, candidate: str, mline_index: int) -> None:
        self._post_threadsafe(ev.LocalCandidate(candidate, int(mline_index)))

    def on_incoming_track(self, kind: str, handle: object) -> None:
        LOG.info("Incoming %s track from remote peer", kind)
        self._call_threadsafe(self._attach_track, kind, handle)

    def on_offer_created(self, sdp: str) -> None:
        self._post_threadsafe(ev.OfferCreated(sdp))

    def on_answer_created(self, sdp: str) -> None:
        self._post_threadsafe(ev.AnswerCreated(sdp))

    def on_negotiation_error(self, message: str) -> None:
        self._post_threadsafe(ev.NegotiationFailed(message))

    # ------------------------------------------------------------------ dispatch

    async def _dispatch_loop(self) -> None:
        assert self._events is not None
        while True:
            event = await self._events.get()
            try:
                self._dispatch(event)
            except Exception:
                LOG.exception("Unhandled error while processing %s", event)
                self._fail("internal error")
                if self._shutdown is None:
                    self._finish(ev.Shutdown(failed=True, reason="internal error"))

    def _dispatch(self, event: ev.Event) -> None:
        self._execute(self.coordinator.handle(event))
        if (
            isinstance(event, ev.TransportOpened)
            and not self._engine_started
            and self.session.state is NegotiationState.AWAITING_PEER
        ):
            self._start_engine()

    def _execute(self, actions: List[ev.Action]) -> None:
        for action in actions:
            try:
                self._performers[type(action)](action)
            except NegotiationError as exc:
                LOG.error("%s failed: %s", type(action).__name__, exc)
                self._fail(str(exc))
                return

    def _start_engine(self) -> None:
        self._engine_started = True
        try:
            self.engine.start()
        except NegotiationError as exc:
            self._fail(str(exc))

    def _fail(self, message: str) -> None:
        self._execute(self.coordinator.handle(ev.NegotiationFailed(message)))

    # ------------------------------------------------------------------ actions

    def _create_offer(self, _action: ev.CreateOffer) -> None:
        self.engine.create_offer()

    def _create_answer(self, _action: ev.CreateAnswer) -> None:
        self.engine.create_answer()

    def _set_local_description(self, action: ev.SetLocalDescription) -> None:
        self.engine.set_local_description(SessionDescription(action.kind, action.sdp))

    def _set_remote_description(self, action: ev.SetRemoteDescription) -> None:
        self.engine.set_remote_description(SessionDescription(action.kind, action.sdp))

    def _add_ice_candidate(self, action: ev.AddIceCandidate) -> None:
        # A single bad candidate does not end the call.
        try:
            self.engine.add_ice_candidate(action.candidate, action.sdp_mline_index)
        except NegotiationError as exc:
            LOG.warning("Remote ICE candidate rejected: %s", exc)

    def _send(self, action: ev.Send) -> None:
        message = action.message
        if not self.channel.send(message):
            return
        if isinstance(message, Offer):
            self.post(ev.DescriptionSent(ev.DescriptionKind.OFFER))
        elif isinstance(message, Answer):
            self.post(ev.DescriptionSent(ev.DescriptionKind.ANSWER))

    def _arm_timer(self, action: ev.ArmTimer) -> None:
        self._cancel_timer()
        timeout = self.config.negotiation_timeout
        if timeout <= 0 or self._loop is None:
            return
        self._timer = self._loop.call_later(timeout, self.post, ev.NegotiationTimedOut(action.round))

    def _cancel_timer(self, _action: Optional[ev.CancelTimer] = None) -> None:
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def _finish(self, action: ev.Shutdown) -> None:
        if self._shutdown is not None:
            return
        self._shutdown = action
        if self._done is not None:
            self._done.set()

    # ------------------------------------------------------------------ helpers

    def _attach_track(self, kind: str, handle: object) -> None:
        try:
            self.engine.attach_track(kind, handle)
        except Exception:
            LOG.exception("Failed to attach incoming %s track", kind)

    def _post_threadsafe(self, event: ev.Event) -> None:
        self._call_threadsafe(self.post, event)

    def _call_threadsafe(self, callback: Callable[..., None], *args: object) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            LOG.debug("Event loop unavailable; dropping %s", args)
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            LOG.debug("Event loop closed; dropping %s", args)


__all__ = ["SessionController"]
