"""
Room bookkeeping and per-connection sessions for the signaling relay.

The relay does not interpret signaling traffic: every text frame a peer sends
is forwarded verbatim to the other members of its room.  The only frame the
relay authors itself is ``peer-ready``, broadcast whenever a join leaves a
room with at least two members.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Dict, List, Optional

from fastapi import WebSocket, WebSocketDisconnect

from ..signaling import codec
from ..signaling.messages import PeerReady

LOG = logging.getLogger(__name__)

DEFAULT_ROOM = "default"
DEFAULT_QUEUE_SIZE = 256


class RelayPeer:
    """One websocket connection inside a room."""

    def __init__(self, websocket: WebSocket, room: str, *, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.websocket = websocket
        self.room = room
        self.peer_id = uuid.uuid4().hex
        self.send_queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._stop_event = asyncio.Event()
        self._closing = False
        self._close_task: Optional[asyncio.Task] = None
        self.logger = LOG.getChild(f"peer.{self.peer_id[:8]}")

    @property
    def is_stopped(self) -> bool:
        return self._stop_event.is_set()

    def send(self, text: str) -> bool:
        """
        Queue ``text`` for this peer.  A peer that cannot keep up is stopped,
        which removes it from its room.
        """

        if self.is_stopped:
            return False
        try:
            self.send_queue.put_nowait(text)
        except asyncio.QueueFull:
            self.logger.warning("Outbound queue full; dropping peer from room '%s'", self.room)
            self._stop_event.set()
            return False
        return True

    async def run(self, registry: "RoomRegistry") -> None:
        # Joining before the handshake completes means frames queued for this
        # peer are flushed by the send loop as soon as it starts.
        registry.join(self)
        try:
            try:
                await self.websocket.accept()
            except Exception:  # pragma: no cover - defensive
                self.logger.exception("Failed to accept WebSocket connection")
                return

            async with asyncio.TaskGroup() as task_group:
                task_group.create_task(self._recv_loop(registry))
                task_group.create_task(self._send_loop())
        except asyncio.CancelledError:
            raise
        except WebSocketDisconnect:
            self.logger.debug("WebSocket client disconnected")
        except Exception:  # pragma: no cover - defensive
            self.logger.exception("Relay session crashed")
        finally:
            registry.leave(self)
            await self.close(code=1000)

    def evict(self) -> None:
        """
        Close the socket of a peer that was dropped from its room so its
        receive loop unwinds.
        """

        if self._closing:
            return
        self._stop_event.set()
        self._close_task = asyncio.get_running_loop().create_task(
            self.close(code=1011, reason="dropped from room")
        )

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        if self._closing:
            return
        self._closing = True
        self._stop_event.set()
        with contextlib.suppress(RuntimeError, WebSocketDisconnect):
            await self.websocket.close(code=code, reason=reason)

    async def _recv_loop(self, registry: "RoomRegistry") -> None:
        try:
            while not self.is_stopped:
                try:
                    message = await self.websocket.receive()
                except asyncio.CancelledError:
                    raise
                except (RuntimeError, WebSocketDisconnect):
                    break

                if message.get("type") == "websocket.disconnect":
                    break
                text = message.get("text")
                if text is None:
                    self.logger.debug("Ignoring binary frame")
                    continue
                registry.forward(self, text)
        finally:
            self._stop_event.set()

    async def _send_loop(self) -> None:
        try:
            while not self.is_stopped:
                try:
                    text = await asyncio.wait_for(self.send_queue.get(), timeout=0.5)
                except asyncio.TimeoutError:
                    continue

                try:
                    await self.websocket.send_text(text)
                except asyncio.CancelledError:
                    raise
                except WebSocketDisconnect:
                    break
                except RuntimeError as exc:
                    self.logger.debug("Send after close ignored: %s", exc)
                    break
                except Exception:  # pragma: no cover - defensive
                    self.logger.exception("Failed to send message")
                    break
                finally:
                    self.send_queue.task_done()
        finally:
            self._stop_event.set()


class RoomRegistry:
    """
    Membership of every room on this relay.

    All methods run on the server's event loop and never await, so membership
    changes and broadcasts are atomic with respect to each other.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, RelayPeer]] = {}

    def join(self, peer: RelayPeer) -> int:
        members = self._rooms.setdefault(peer.room, {})
        members[peer.peer_id] = peer
        count = len(members)
        LOG.info("Peer %s joined room '%s' (%d member(s))", peer.peer_id[:8], peer.room, count)
        if count >= 2:
            notice = codec.encode(PeerReady())
            for member in list(members.values()):
                self._deliver(member, notice)
        return count

    def leave(self, peer: RelayPeer) -> None:
        members = self._rooms.get(peer.room)
        if not members or members.pop(peer.peer_id, None) is None:
            return
        LOG.info("Peer %s left room '%s' (%d member(s))", peer.peer_id[:8], peer.room, len(members))
        if not members:
            del self._rooms[peer.room]
            LOG.debug("Room '%s' is empty and was removed", peer.room)

    def forward(self, sender: RelayPeer, text: str) -> int:
        """
        Relay ``text`` to every other member of the sender's room and return
        how many peers accepted it.
        """

        members = self._rooms.get(sender.room)
        if not members or members.get(sender.peer_id) is not sender:
            return 0
        delivered = 0
        for member in list(members.values()):
            if member is sender:
                continue
            if self._deliver(member, text):
                delivered += 1
        return delivered

    def members(self, room: str) -> List[RelayPeer]:
        return list(self._rooms.get(room, {}).values())

    def snapshot(self) -> Dict[str, int]:
        return {room: len(members) for room, members in self._rooms.items()}

    def _deliver(self, member: RelayPeer, text: str) -> bool:
        if member.send(text):
            return True
        self.leave(member)
        member.evict()
        return False


__all__ = ["DEFAULT_ROOM", "RelayPeer", "RoomRegistry"]
