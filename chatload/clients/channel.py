"""Socket.IO messaging channel.

Inbound Socket.IO events are not handled in callbacks. Each handler only turns
the event into a ``ChannelEvent`` and puts it on a queue, and the owning
session consumes that queue in its own receive loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Protocol

import socketio
import structlog
from socketio import exceptions as sio_exceptions

from chatload.shared.errors import ChannelConnectionError, MessageError

logger = structlog.get_logger()


class ChannelEventType(StrEnum):
    JOIN_ACCEPTED = "join_accepted"
    JOIN_REJECTED = "join_rejected"
    MESSAGE_RECEIVED = "message_received"
    READ_ACK = "read_ack"
    CHANNEL_ERROR = "channel_error"
    CONNECT_ERROR = "connect_error"
    DISCONNECTED = "disconnected"


# Socket.IO event name -> channel event
SOCKET_EVENTS: dict[str, ChannelEventType] = {
    "joinRoomSuccess": ChannelEventType.JOIN_ACCEPTED,
    "joinRoomError": ChannelEventType.JOIN_REJECTED,
    "message": ChannelEventType.MESSAGE_RECEIVED,
    "messagesRead": ChannelEventType.READ_ACK,
    "error": ChannelEventType.CHANNEL_ERROR,
    "connect_error": ChannelEventType.CONNECT_ERROR,
    "disconnect": ChannelEventType.DISCONNECTED,
}


@dataclass(frozen=True)
class ChannelEvent:
    type: ChannelEventType
    data: Any = None

    @property
    def message_id(self) -> str | None:
        if isinstance(self.data, dict) and self.data.get("_id"):
            return str(self.data["_id"])
        return None

    @property
    def participant_count(self) -> int:
        if isinstance(self.data, dict):
            return len(self.data.get("participants") or [])
        return 0

    def describe(self) -> str:
        """Human-readable reason/info carried by the event."""
        if isinstance(self.data, dict):
            return str(self.data.get("message") or self.data)
        if self.data is None:
            return "unknown"
        return str(self.data)


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded connect retry: one initial try plus ``attempts`` retries.

    Every try walks ``transports`` in order, so the preferred transport is used
    when it works and the next one is tried before the attempt counts as failed.
    """

    attempts: int = 3
    delay_seconds: float = 1.0
    transports: tuple[str, ...] = ("websocket", "polling")
    connect_timeout_seconds: float = 10.0

    @property
    def max_tries(self) -> int:
        return 1 + max(0, self.attempts)


class Channel(Protocol):
    """Bidirectional messaging channel used by one simulated session."""

    async def connect(self, token: str, session_id: str) -> int: ...

    async def join_room(self, room_id: str) -> None: ...

    async def send_message(self, room_id: str, message_type: str, content: str) -> None: ...

    async def mark_read(self, room_id: str, message_ids: list[str]) -> None: ...

    async def next_event(self) -> ChannelEvent: ...

    async def close(self) -> None: ...


class SocketIOChannel:
    """``Channel`` backed by ``socketio.AsyncClient``.

    The library's own reconnection is disabled; ``ReconnectPolicy`` is the
    only retry mechanism.
    """

    def __init__(
        self,
        url: str,
        policy: ReconnectPolicy | None = None,
        *,
        client_factory: Callable[[], socketio.AsyncClient] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self._client_factory = client_factory or (
            lambda: socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)
        )
        self._sleep = sleep
        self._client: socketio.AsyncClient | None = None
        self._events: asyncio.Queue[ChannelEvent] = asyncio.Queue()
        self._connected = False
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._connected and not self._closed

    def _register_handlers(self, client: socketio.AsyncClient) -> None:
        for socket_event, event_type in SOCKET_EVENTS.items():
            client.on(socket_event, self._make_handler(event_type))

    def _make_handler(self, event_type: ChannelEventType) -> Callable[..., Awaitable[None]]:
        async def handler(*args: Any) -> None:
            # connect_error/disconnect also fire for failed initial tries;
            # those are reported by connect() itself.
            if not self._connected:
                return
            self._events.put_nowait(ChannelEvent(event_type, args[0] if args else None))

        return handler

    async def connect(self, token: str, session_id: str) -> int:
        """Open the channel; returns the number of tries it took."""
        auth = {"token": token, "sessionId": session_id}
        last_error: Exception | None = None
        for attempt in range(1, self.policy.max_tries + 1):
            for transport in self.policy.transports:
                client = self._client_factory()
                self._register_handlers(client)
                try:
                    await client.connect(
                        self.url,
                        auth=auth,
                        transports=[transport],
                        wait_timeout=self.policy.connect_timeout_seconds,
                    )
                except (sio_exceptions.ConnectionError, OSError, asyncio.TimeoutError) as exc:
                    last_error = exc
                    logger.debug(
                        "channel_connect_failed",
                        url=self.url,
                        attempt=attempt,
                        transport=transport,
                        error=str(exc),
                    )
                    continue
                self._client = client
                self._connected = True
                return attempt
            if attempt < self.policy.max_tries:
                await self._sleep(self.policy.delay_seconds)
        raise ChannelConnectionError(
            f"connect to {self.url} failed after {self.policy.max_tries} tries: {last_error}",
            attempts=self.policy.max_tries,
        )

    async def _emit(self, event: str, data: Any) -> None:
        if self._client is None or not self.connected:
            raise MessageError(f"cannot emit {event!r}: channel is not connected")
        try:
            await self._client.emit(event, data)
        except sio_exceptions.SocketIOError as exc:
            raise MessageError(f"emit {event!r} failed: {exc}") from exc

    async def join_room(self, room_id: str) -> None:
        await self._emit("joinRoom", room_id)

    async def send_message(self, room_id: str, message_type: str, content: str) -> None:
        await self._emit("chatMessage", {"room": room_id, "type": message_type, "content": content})

    async def mark_read(self, room_id: str, message_ids: list[str]) -> None:
        await self._emit("markMessagesAsRead", {"roomId": room_id, "messageIds": message_ids})

    async def next_event(self) -> ChannelEvent:
        return await self._events.get()

    async def close(self) -> None:
        """Disconnect once; later calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        # the library fires its own disconnect event; only the one below is queued
        self._connected = False
        if self._client is not None and self._client.connected:
            await self._client.disconnect()
        self._events.put_nowait(ChannelEvent(ChannelEventType.DISCONNECTED, "io client disconnect"))

