"""
GStreamer ``webrtcbin`` negotiation engine.

webrtcbin emits its signals and resolves its promises on GStreamer streaming
threads.  The engine forwards everything to its listener as-is; marshalling
onto the controller's event loop is the listener's job.  When PyGObject or
GStreamer is missing the engine can still be constructed, but :meth:`start`
raises :class:`~clive.errors.EngineUnavailableError`.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional, Tuple, TYPE_CHECKING

from ..errors import EngineUnavailableError, NegotiationError
from ..signaling.events import DescriptionKind
from .engine import NegotiationEngine, SessionDescription
from .media import MediaProfile

try:  # pragma: no cover - availability depends on host environment
    import gi  # type: ignore

    gi.require_version("Gst", "1.0")
    gi.require_version("GstSdp", "1.0")
    gi.require_version("GstWebRTC", "1.0")
    from gi.repository import Gst, GstSdp, GstWebRTC  # type: ignore
except (ImportError, ValueError) as exc:  # pragma: no cover
    Gst = None  # type: ignore[assignment]
    GstSdp = None  # type: ignore[assignment]
    GstWebRTC = None  # type: ignore[assignment]
    _GST_IMPORT_ERROR: Optional[BaseException] = exc
else:  # pragma: no cover - executed only when GStreamer is present
    _GST_IMPORT_ERROR = None

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from gi.repository import Gst as GstModule
else:
    GstModule = Any

LOG = logging.getLogger(__name__)

BUS_POLL_INTERVAL_NS = 100_000_000  # 100ms

_GST_INIT_LOCK = threading.Lock()
_GST_INITIALISED = False


def _require_gstreamer() -> None:
    global _GST_INITIALISED
    if Gst is None:
        raise EngineUnavailableError(
            "GStreamer runtime is not available. Install PyGObject and GStreamer "
            "1.16+ with the webrtc plugins to run a media session."
        ) from _GST_IMPORT_ERROR
    with _GST_INIT_LOCK:
        if not _GST_INITIALISED:
            Gst.init(None)
            _GST_INITIALISED = True


class WebRTCBinEngine(NegotiationEngine):
    """
    Negotiation engine built on a ``webrtcbin`` pipeline described by a
    :class:`MediaProfile`.
    """

    def __init__(self, profile: Optional[MediaProfile] = None) -> None:
        super().__init__()
        self.profile = profile or MediaProfile()
        self._pipeline: Optional[GstModule.Pipeline] = None
        self._webrtc: Optional[GstModule.Element] = None
        self._handlers: List[Tuple[GstModule.Element, int]] = []
        self._bus_thread: Optional[threading.Thread] = None
        self._bus_stop = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._pipeline is not None

    # ------------------------------------------------------------------ lifecycle

    def start(self) -> None:
        if self._pipeline is not None:
            return
        _require_gstreamer()

        description = self.profile.describe()
        LOG.debug("Launching pipeline: %s", description)
        try:
            pipeline = Gst.parse_launch(description)
        except Exception as exc:
            raise NegotiationError(f"failed to create pipeline: {exc}") from exc

        webrtc = pipeline.get_by_name(self.profile.webrtc_name)
        if webrtc is None:
            raise NegotiationError(f"pipeline has no webrtcbin named '{self.profile.webrtc_name}'")

        self._handlers = [
            (webrtc, webrtc.connect("on-negotiation-needed", self._on_negotiation_needed)),
            (webrtc, webrtc.connect("on-ice-candidate", self._on_ice_candidate)),
            (webrtc, webrtc.connect("pad-added", self._on_pad_added)),
        ]
        self._pipeline = pipeline
        self._webrtc = webrtc
        self._start_bus_monitor(pipeline)

        if pipeline.set_state(Gst.State.PLAYING) == Gst.StateChangeReturn.FAILURE:
            self.stop()
            raise NegotiationError("failed to set pipeline to PLAYING")
        LOG.info("Media pipeline started")

    def stop(self) -> None:
        pipeline = self._pipeline
        if pipeline is None:
            return
        try:
            pipeline.set_state(Gst.State.NULL)
        except Exception:  # pragma: no cover - defensive
            LOG.exception("Failed to set pipeline to NULL during shutdown")

        self._stop_bus_monitor()
        for element, handler_id in self._handlers:
            try:
                element.disconnect(handler_id)
            except Exception:  # pragma: no cover - defensive
                LOG.debug("Failed to disconnect handler on %s", element, exc_info=True)
        self._handlers.clear()
        self._pipeline = None
        self._webrtc = None
        LOG.info("Media pipeline stopped")

    # ------------------------------------------------------------------ negotiation

    def create_offer(self) -> None:
        webrtc = self._require_webrtc()
        promise = Gst.Promise.new_with_change_func(self._on_description_created, DescriptionKind.OFFER, None)
        webrtc.emit("create-offer", None, promise)

    def create_answer(self) -> None:
        webrtc = self._require_webrtc()
        promise = Gst.Promise.new_with_change_func(self._on_description_created, DescriptionKind.ANSWER, None)
        webrtc.emit("create-answer", None, promise)

    def set_local_description(self, description: SessionDescription) -> None:
        webrtc = self._require_webrtc()
        promise = Gst.Promise.new_with_change_func(self._on_description_applied, "local", None)
        webrtc.emit("set-local-description", self._to_gst_description(description), promise)

    def set_remote_description(self, description: SessionDescription) -> None:
        webrtc = self._require_webrtc()
        promise = Gst.Promise.new_with_change_func(self._on_description_applied, "remote", None)
        webrtc.emit("set-remote-description", self._to_gst_description(description), promise)

    def add_ice_candidate(self, candidate: str, mline_index: int) -> None:
        webrtc = self._require_webrtc()
        webrtc.emit("add-ice-candidate", int(mline_index), candidate)

    def attach_track(self, kind: str, handle: object) -> None:
        pipeline = self._pipeline
        if pipeline is None:
            return
        chain = self.profile.playback_chain(kind)
        if chain is None:
            LOG.warning("No playback chain for incoming %s track", kind)
            return
        try:
            sink = Gst.parse_bin_from_description(chain, True)
        except Exception:
            LOG.exception("Failed to build playback chain for %s", kind)
            return
        pipeline.add(sink)
        sink.sync_state_with_parent()
        sink_pad = sink.get_static_pad("sink")
        if handle.link(sink_pad) != Gst.PadLinkReturn.OK:  # type: ignore[attr-defined]
            LOG.error("Failed to link incoming %s pad", kind)
            return
        LOG.info("Playing incoming %s track", kind)

    # ------------------------------------------------------------------ signals

    def _on_negotiation_needed(self, _element: GstModule.Element) -> None:
        listener = self._listener
        if listener is not None:
            listener.on_negotiation_needed()

    def _on_ice_candidate(self, _element: GstModule.Element, mline_index: int, candidate: str) -> None:
        listener = self._listener
        if listener is not None:
            listener.on_ice_candidate(candidate, int(mline_index))

    def _on_pad_added(self, _element: GstModule.Element, pad: GstModule.Pad) -> None:
        if pad.direction != Gst.PadDirection.SRC:
            return
        caps = pad.get_current_caps() or pad.query_caps(None)
        if not caps or caps.get_size() == 0:
            return
        structure = caps.get_structure(0)
        kind = structure.get_string("media") or structure.get_name().split("/", 1)[0]
        LOG.info("Received new pad '%s' (%s)", pad.get_name(), kind)
        listener = self._listener
        if listener is not None:
            listener.on_incoming_track(kind, pad)

    def _on_description_created(self, promise: GstModule.Promise, kind: DescriptionKind, _data: object) -> None:
        listener = self._listener
        reply = promise.get_reply() if promise.wait() == Gst.PromiseResult.REPLIED else None
        if reply is None or not reply.has_field(kind.value):
            message = self._reply_error(reply) or "no reply"
            LOG.error("Failed to create %s: %s", kind.value, message)
            if listener is not None:
                listener.on_negotiation_error(f"failed to create {kind.value}: {message}")
            return

        description = reply.get_value(kind.value)
        sdp = description.sdp.as_text()
        if listener is None:
            return
        if kind is DescriptionKind.OFFER:
            listener.on_offer_created(sdp)
        else:
            listener.on_answer_created(sdp)

    def _on_description_applied(self, promise: GstModule.Promise, side: str, _data: object) -> None:
        promise.wait()
        message = self._reply_error(promise.get_reply())
        if message is None:
            return
        LOG.error("Failed to set %s description: %s", side, message)
        listener = self._listener
        if listener is not None:
            listener.on_negotiation_error(f"{side} description rejected: {message}")

    # ------------------------------------------------------------------ helpers

    def _require_webrtc(self) -> GstModule.Element:
        if self._webrtc is None:
            raise NegotiationError("media pipeline is not running")
        return self._webrtc

    @staticmethod
    def _reply_error(reply: Optional[GstModule.Structure]) -> Optional[str]:
        if reply is None or not reply.has_field("error"):
            return None
        error = reply.get_value("error")
        return getattr(error, "message", None) or str(error)

    @staticmethod
    def _to_gst_description(description: SessionDescription) -> "GstWebRTC.WebRTCSessionDescription":
        result, message = GstSdp.SDPMessage.new_from_text(description.sdp)
        if result != GstSdp.SDPResult.OK:
            raise NegotiationError(f"invalid {description.kind.value} SDP ({result})")
        sdp_type = (
            GstWebRTC.WebRTCSDPType.OFFER
            if description.kind is DescriptionKind.OFFER
            else GstWebRTC.WebRTCSDPType.ANSWER
        )
        return GstWebRTC.WebRTCSessionDescription.new(sdp_type, message)

    # ------------------------------------------------------------------ bus

    def _start_bus_monitor(self, pipeline: GstModule.Pipeline) -> None:
        bus = pipeline.get_bus()
        if not bus:
            LOG.warning("Pipeline bus is not available; skipping bus monitoring.")
            return

        self._bus_stop.clear()
        mask = Gst.MessageType.ERROR | Gst.MessageType.EOS | Gst.MessageType.WARNING

        def _loop() -> None:
            while not self._bus_stop.is_set():
                message = bus.timed_pop_filtered(BUS_POLL_INTERVAL_NS, mask)
                if message is None:
                    continue
                self._handle_bus_message(message)

        thread = threading.Thread(target=_loop, name="clive-gst-bus", daemon=True)
        thread.start()
        self._bus_thread = thread

    def _stop_bus_monitor(self) -> None:
        self._bus_stop.set()
        thread = self._bus_thread
        if thread and thread.is_alive() and threading.current_thread() is not thread:
            thread.join(timeout=1.0)
        self._bus_thread = None

    def _handle_bus_message(self, message: GstModule.Message) -> None:
        if message.type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            LOG.error("Pipeline error: %s (%s)", err, debug)
            listener = self._listener
            if listener is not None:
                listener.on_negotiation_error(f"pipeline error: {err}")
        elif message.type == Gst.MessageType.WARNING:
            warn, debug = message.parse_warning()
            LOG.warning("Pipeline warning: %s (%s)", warn, debug)
        elif message.type == Gst.MessageType.EOS:
            LOG.info("Pipeline reached EOS")


__all__ = ["WebRTCBinEngine"]
