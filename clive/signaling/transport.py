"""
Signaling transport and the adapter that turns frames into coordinator events.

:class:`WebSocketTransport` owns a raw websocket connection and reports its
lifecycle to a :class:`TransportListener`.  :class:`SignalingChannel` is that
listener: it decodes inbound frames, guarantees the close notification is
delivered once, and queues outbound frames so a slow connection never blocks
the state machine.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from ..errors import DecodeError, TransportError
from . import codec
from . import events as ev
from .messages import SignalingMessage

LOG = logging.getLogger(__name__)

EventSink = Callable[[ev.Event], None]


class TransportListener:
    """
    Receiver of transport lifecycle callbacks.
    """

    def on_open(self) -> None:
        raise NotImplementedError

    def on_text(self, text: str) -> None:
        raise NotImplementedError

    def on_error(self, message: str) -> None:
        raise NotImplementedError

    def on_closed(self, reason: str) -> None:
        raise NotImplementedError


class Transport:
    """
    Base class for signaling transports.

    ``connect`` resolves either by calling ``listener.on_open`` or
    ``listener.on_error``.  Once open, frames are reported through
    ``on_text`` in receipt order and ``on_closed`` ends the connection.
    """

    async def connect(self, url: str, listener: TransportListener) -> None:
        raise NotImplementedError

    async def send_text(self, text: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class WebSocketTransport(Transport):
    """Websocket client transport backed by ``websockets``."""

    def __init__(self, *, open_timeout: float = 10.0, ping_interval: Optional[float] = 20.0) -> None:
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self._connection: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None

    async def connect(self, url: str, listener: TransportListener) -> None:
        LOG.info("Connecting to signaling server %s", url)
        try:
            self._connection = await connect(
                url,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            listener.on_error(f"failed to connect to {url}: {exc}")
            return
        listener.on_open()
        self._reader = asyncio.create_task(self._read_loop(self._connection, listener))

    async def _read_loop(self, connection: ClientConnection, listener: TransportListener) -> None:
        reason = "closed by peer"
        try:
            async for frame in connection:
                if isinstance(frame, bytes):
                    LOG.debug("Ignoring %d byte binary frame", len(frame))
                    continue
                try:
                    listener.on_text(frame)
                except Exception:
                    LOG.exception("Failed to handle inbound signaling frame")
        except ConnectionClosedError as exc:
            reason = f"connection lost: {exc}"
            listener.on_error(reason)
        finally:
            self._connection = None
            listener.on_closed(reason)

    async def send_text(self, text: str) -> None:
        connection = self._connection
        if connection is None:
            raise TransportError("websocket is not connected")
        await connection.send(text)

    async def close(self) -> None:
        connection = self._connection
        if connection is not None:
            await connection.close(code=1000, reason="Client closing")
        reader = self._reader
        self._reader = None
        if reader is not None and reader is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await reader


class SignalingChannel(TransportListener):
    """
    Adapter between one :class:`Transport` and the coordinator's event stream.
    """

    def __init__(self, transport: Transport, sink: EventSink, *, queue_size: int = 256) -> None:
        self._transport = transport
        self._sink = sink
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=max(1, int(queue_size)))
        self._sender: Optional[asyncio.Task] = None
        self._open = False
        self._closed = False
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._open and not self._closed

    async def connect(self, url: str) -> None:
        await self._transport.connect(url, self)

    def send(self, message: SignalingMessage) -> bool:
        """
        Queue ``message`` for delivery; a no-op once the connection is gone.
        """

        if not self.is_open:
            LOG.debug("Signaling connection not open; dropping %s", codec.message_type(message))
            return False
        try:
            self._queue.put_nowait(codec.encode(message))
        except asyncio.QueueFull:
            LOG.warning("Dropping %s message due to backpressure", codec.message_type(message))
            return False
        return True

    async def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._open = False
        try:
            await self._transport.close()
        except Exception:  # pragma: no cover - defensive
            LOG.exception("Failed to close signaling transport cleanly.")
        self._stop_sender()

    # ------------------------------------------------------------------ listener

    def on_open(self) -> None:
        if self._closed:
            return
        self._open = True
        self._sender = asyncio.get_running_loop().create_task(self._send_loop())
        LOG.info("Connected to signaling server")
        self._sink(ev.TransportOpened())

    def on_text(self, text: str) -> None:
        if self._closed:
            return
        try:
            message = codec.decode(text)
        except DecodeError as exc:
            self._sink(ev.MessageRejected(exc))
            return
        self._sink(ev.MessageReceived(message))

    def on_error(self, message: str) -> None:
        if self._closed:
            return
        LOG.error("Signaling error: %s", message)
        self._sink(ev.TransportFailed(message))

    def on_closed(self, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        self._open = False
        self._stop_sender()
        LOG.info("Signaling connection closed (%s)", reason)
        self._sink(ev.TransportClosed(reason))

    # ------------------------------------------------------------------ internal

    async def _send_loop(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self._transport.send_text(text)
            except asyncio.CancelledError:
                raise
            except (ConnectionClosed, TransportError) as exc:
                LOG.debug("Send after close ignored: %s", exc)
            except Exception:
                LOG.exception("Failed to send signaling message")
            finally:
                self._queue.task_done()

    def _stop_sender(self) -> None:
        sender = self._sender
        self._sender = None
        if sender is not None and not sender.done():
            sender.cancel()


__all__ = [
    "EventSink",
    "SignalingChannel",
    "Transport",
    "TransportListener",
    "WebSocketTransport",
]
