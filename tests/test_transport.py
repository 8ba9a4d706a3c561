import asyncio
from typing import List, Optional

from websockets.exceptions import ConnectionClosedError

from clive.errors import MalformedPayload, UnknownType
from clive.signaling import transport as transport_module
from clive.signaling import events as ev
from clive.signaling.messages import Candidate, Offer, PeerReady
from clive.signaling.transport import SignalingChannel, Transport, TransportListener, WebSocketTransport


class FakeTransport(Transport):
    def __init__(self, *, fail: Optional[str] = None) -> None:
        self.fail = fail
        self.listener: Optional[TransportListener] = None
        self.url: Optional[str] = None
        self.sent: List[str] = []
        self.close_calls = 0

    async def connect(self, url: str, listener: TransportListener) -> None:
        self.url = url
        self.listener = listener
        if self.fail:
            listener.on_error(self.fail)
            return
        listener.on_open()

    async def send_text(self, text: str) -> None:
        self.sent.append(text)

    async def close(self) -> None:
        self.close_calls += 1
        if self.listener is not None:
            self.listener.on_closed("closed locally")


def test_channel_emits_open_and_decoded_messages() -> None:
    async def scenario() -> List[ev.Event]:
        events: List[ev.Event] = []
        transport = FakeTransport()
        channel = SignalingChannel(transport, events.append)
        await channel.connect("ws://localhost:8080/ws?room=lobby")

        transport.listener.on_text('{"type":"offer","data":{"sdp":"v=0 offer"}}')
        transport.listener.on_text('{"type":"bye","data":null}')
        transport.listener.on_text("{oops")
        await channel.close()
        return events

    events = asyncio.run(scenario())

    assert events[0] == ev.TransportOpened()
    assert events[1] == ev.MessageReceived(Offer(sdp="v=0 offer"))
    assert isinstance(events[2], ev.MessageRejected)
    assert isinstance(events[2].error, UnknownType)
    assert isinstance(events[3], ev.MessageRejected)
    assert isinstance(events[3].error, MalformedPayload)
    assert events[4] == ev.TransportClosed("closed locally")
    assert len(events) == 5


def test_channel_flushes_queued_sends() -> None:
    async def scenario() -> FakeTransport:
        transport = FakeTransport()
        channel = SignalingChannel(transport, lambda _event: None)
        await channel.connect("ws://localhost:8080/ws?room=lobby")

        assert channel.send(Offer(sdp="v=0 offer")) is True
        assert channel.send(Candidate(candidate="candidate:1", sdp_mline_index=0)) is True
        for _ in range(5):
            await asyncio.sleep(0)
        await channel.close()
        return transport

    transport = asyncio.run(scenario())

    assert transport.sent == [
        '{"type":"offer","data":{"sdp":"v=0 offer"}}',
        '{"type":"candidate","data":{"candidate":"candidate:1","sdpMLineIndex":0}}',
    ]


def test_send_after_close_is_a_no_op() -> None:
    async def scenario() -> tuple:
        transport = FakeTransport()
        channel = SignalingChannel(transport, lambda _event: None)
        await channel.connect("ws://localhost:8080/ws?room=lobby")
        await channel.close()
        accepted = channel.send(Offer(sdp="v=0 offer"))
        await asyncio.sleep(0)
        return accepted, transport.sent

    accepted, sent = asyncio.run(scenario())

    assert accepted is False
    assert sent == []


def test_send_before_open_is_a_no_op() -> None:
    async def scenario() -> bool:
        channel = SignalingChannel(FakeTransport(), lambda _event: None)
        return channel.send(Offer(sdp="v=0 offer"))

    assert asyncio.run(scenario()) is False


def test_close_is_delivered_once() -> None:
    async def scenario() -> tuple:
        events: List[ev.Event] = []
        transport = FakeTransport()
        channel = SignalingChannel(transport, events.append)
        await channel.connect("ws://localhost:8080/ws?room=lobby")

        transport.listener.on_closed("closed by peer")
        transport.listener.on_text('{"type":"peer-ready","data":null}')
        await channel.close()
        await channel.close()
        return events, transport.close_calls

    events, close_calls = asyncio.run(scenario())

    assert events == [ev.TransportOpened(), ev.TransportClosed("closed by peer")]
    assert close_calls == 1


def test_connect_failure_reports_transport_failed() -> None:
    async def scenario() -> List[ev.Event]:
        events: List[ev.Event] = []
        channel = SignalingChannel(FakeTransport(fail="connection refused"), events.append)
        await channel.connect("ws://localhost:1/ws?room=lobby")
        return events

    assert asyncio.run(scenario()) == [ev.TransportFailed("connection refused")]


def test_backpressure_drops_messages() -> None:
    async def scenario() -> tuple:
        transport = FakeTransport()
        channel = SignalingChannel(transport, lambda _event: None, queue_size=1)
        await channel.connect("ws://localhost:8080/ws?room=lobby")
        first = channel.send(Candidate(candidate="candidate:1"))
        second = channel.send(Candidate(candidate="candidate:2"))
        await channel.close()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is True
    assert second is False


class FakeConnection:
    """Stands in for a websockets client connection."""

    def __init__(self, frames: List[object] = (), *, error: Optional[Exception] = None) -> None:
        self.frames = list(frames)
        self.error = error
        self.sent: List[str] = []
        self.close_args: Optional[tuple] = None
        self._closed = asyncio.Event()

    async def __aiter__(self):
        for frame in self.frames:
            yield frame
        if self.error is not None:
            raise self.error
        await self._closed.wait()

    async def send(self, text: str) -> None:
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_args = (code, reason)
        self._closed.set()


class RecordingListener(TransportListener):
    def __init__(self, *, fail_on: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.calls: List[tuple] = []

    def on_open(self) -> None:
        self.calls.append(("open",))

    def on_text(self, text: str) -> None:
        if text == self.fail_on:
            raise RuntimeError("listener blew up")
        self.calls.append(("text", text))

    def on_error(self, message: str) -> None:
        self.calls.append(("error", message))

    def on_closed(self, reason: str) -> None:
        self.calls.append(("closed", reason))


def patch_connect(monkeypatch, connection: Optional[FakeConnection] = None, error: Optional[Exception] = None):
    seen = {}

    async def fake_connect(url: str, **kwargs):
        seen["url"] = url
        seen.update(kwargs)
        if error is not None:
            raise error
        return connection

    monkeypatch.setattr(transport_module, "connect", fake_connect)
    return seen


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def test_websocket_connect_failure_reports_error(monkeypatch) -> None:
    patch_connect(monkeypatch, error=OSError("connection refused"))
    listener = RecordingListener()

    asyncio.run(WebSocketTransport().connect("ws://localhost:1/ws?room=lobby", listener))

    assert listener.calls == [("error", "failed to connect to ws://localhost:1/ws?room=lobby: connection refused")]


def test_websocket_skips_binary_frames_and_close_waits_for_reader(monkeypatch) -> None:
    async def scenario() -> tuple:
        connection = FakeConnection([b"\x00\x01", '{"type":"peer-ready","data":null}'])
        seen = patch_connect(monkeypatch, connection)
        listener = RecordingListener()
        transport = WebSocketTransport(open_timeout=3.0)

        await transport.connect("ws://localhost:8080/ws?room=lobby", listener)
        await settle()
        await transport.send_text("hello")
        await transport.close()
        return seen, connection, listener

    seen, connection, listener = asyncio.run(scenario())

    assert seen["open_timeout"] == 3.0
    assert listener.calls == [
        ("open",),
        ("text", '{"type":"peer-ready","data":null}'),
        ("closed", "closed by peer"),
    ]
    assert connection.sent == ["hello"]
    assert connection.close_args == (1000, "Client closing")


def test_websocket_abnormal_close_reports_error_then_closed(monkeypatch) -> None:
    async def scenario() -> RecordingListener:
        connection = FakeConnection(["first"], error=ConnectionClosedError(None, None))
        patch_connect(monkeypatch, connection)
        listener = RecordingListener()
        transport = WebSocketTransport()

        await transport.connect("ws://localhost:8080/ws?room=lobby", listener)
        await settle()
        await transport.close()
        return listener

    calls = asyncio.run(scenario()).calls

    assert calls[:2] == [("open",), ("text", "first")]
    assert calls[2][0] == "error"
    assert calls[2][1].startswith("connection lost")
    assert calls[3] == ("closed", calls[2][1])
    assert len(calls) == 4


def test_listener_failure_does_not_stop_reading(monkeypatch) -> None:
    async def scenario() -> RecordingListener:
        connection = FakeConnection(["boom", "after"])
        patch_connect(monkeypatch, connection)
        listener = RecordingListener(fail_on="boom")
        transport = WebSocketTransport()

        await transport.connect("ws://localhost:8080/ws?room=lobby", listener)
        await settle()
        await transport.close()
        return listener

    calls = asyncio.run(scenario()).calls

    assert calls == [("open",), ("text", "after"), ("closed", "closed by peer")]


def test_deeply_nested_frame_keeps_session_alive(monkeypatch) -> None:
    async def scenario() -> List[ev.Event]:
        deep = '{"type":"offer","data":' + "[" * 200_000 + "]" * 200_000 + "}"
        connection = FakeConnection([deep, '{"type":"peer-ready","data":null}'])
        patch_connect(monkeypatch, connection)
        events: List[ev.Event] = []
        channel = SignalingChannel(WebSocketTransport(), events.append)

        await channel.connect("ws://localhost:8080/ws?room=lobby")
        await settle()
        await channel.close()
        return events

    events = asyncio.run(scenario())

    assert events[0] == ev.TransportOpened()
    assert isinstance(events[1], ev.MessageRejected)
    assert isinstance(events[1].error, MalformedPayload)
    assert events[2] == ev.MessageReceived(PeerReady())
    assert events[3] == ev.TransportClosed("closed by peer")
    assert len(events) == 4
