"""Tests for the Socket.IO channel with a scripted client in place of the network."""

import pytest
from socketio import exceptions as sio_exceptions

from chatload.clients.channel import (
    ChannelEvent,
    ChannelEventType,
    ReconnectPolicy,
    SocketIOChannel,
)
from chatload.shared.errors import ChannelConnectionError, MessageError


class ScriptedClient:
    def __init__(self, fail: bool) -> None:
        self.fail = fail
        self.handlers = {}
        self.connected = False
        self.connect_kwargs = None
        self.emitted = []
        self.disconnect_calls = 0

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def connect(self, url, auth=None, transports=None, wait_timeout=None):
        self.connect_kwargs = {"url": url, "auth": auth, "transports": transports}
        if self.fail:
            raise sio_exceptions.ConnectionError("refused")
        self.connected = True

    async def emit(self, event, data=None):
        self.emitted.append((event, data))

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False
        await self.handlers["disconnect"]("io client disconnect")


class ClientFactory:
    """Hands out clients that fail for the first ``failures`` connects."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.clients: list[ScriptedClient] = []

    def __call__(self) -> ScriptedClient:
        client = ScriptedClient(fail=len(self.clients) < self.failures)
        self.clients.append(client)
        return client


def make_channel(failures: int, sleeps: list[float]) -> tuple[SocketIOChannel, ClientFactory]:
    factory = ClientFactory(failures)

    async def sleep(seconds: float) -> None:
        sleeps.append(seconds)

    channel = SocketIOChannel(
        "ws://chat.test", ReconnectPolicy(), client_factory=factory, sleep=sleep
    )
    return channel, factory


class TestReconnectPolicy:
    def test_max_tries_counts_initial_try(self):
        assert ReconnectPolicy().max_tries == 4
        assert ReconnectPolicy(attempts=0).max_tries == 1


class TestConnect:
    @pytest.mark.asyncio
    async def test_first_try_uses_websocket_and_sends_auth(self):
        sleeps: list[float] = []
        channel, factory = make_channel(0, sleeps)

        assert await channel.connect("tok", "sess") == 1
        kwargs = factory.clients[0].connect_kwargs
        assert kwargs["transports"] == ["websocket"]
        assert kwargs["auth"] == {"token": "tok", "sessionId": "sess"}
        assert sleeps == []
        assert channel.connected

    @pytest.mark.asyncio
    async def test_falls_back_to_polling_within_one_try(self):
        sleeps: list[float] = []
        channel, factory = make_channel(1, sleeps)

        assert await channel.connect("tok", "sess") == 1
        assert [c.connect_kwargs["transports"] for c in factory.clients] == [
            ["websocket"],
            ["polling"],
        ]
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_retries_after_fixed_delay(self):
        sleeps: list[float] = []
        channel, factory = make_channel(4, sleeps)

        assert await channel.connect("tok", "sess") == 3
        assert sleeps == [1.0, 1.0]
        assert len(factory.clients) == 5

    @pytest.mark.asyncio
    async def test_gives_up_after_policy_is_exhausted(self):
        sleeps: list[float] = []
        channel, factory = make_channel(100, sleeps)

        with pytest.raises(ChannelConnectionError) as exc_info:
            await channel.connect("tok", "sess")

        assert exc_info.value.attempts == 4
        assert len(factory.clients) == 8
        assert sleeps == [1.0, 1.0, 1.0]
        assert not channel.connected


class TestEmitAndReceive:
    @pytest.mark.asyncio
    async def test_outbound_payloads(self):
        channel, factory = make_channel(0, [])
        await channel.connect("tok", "sess")

        await channel.join_room("room-1")
        await channel.send_message("room-1", "text", "hello")
        await channel.mark_read("room-1", ["m1"])

        assert factory.clients[0].emitted == [
            ("joinRoom", "room-1"),
            ("chatMessage", {"room": "room-1", "type": "text", "content": "hello"}),
            ("markMessagesAsRead", {"roomId": "room-1", "messageIds": ["m1"]}),
        ]

    @pytest.mark.asyncio
    async def test_inbound_events_are_queued_in_order(self):
        channel, factory = make_channel(0, [])
        await channel.connect("tok", "sess")
        handlers = factory.clients[0].handlers

        await handlers["joinRoomSuccess"]({"participants": ["a", "b", "c"]})
        await handlers["message"]({"_id": "m9", "content": "hi"})
        await handlers["messagesRead"]({"messageIds": ["m9"]})

        joined = await channel.next_event()
        assert joined.type is ChannelEventType.JOIN_ACCEPTED
        assert joined.participant_count == 3
        message = await channel.next_event()
        assert message.message_id == "m9"
        assert (await channel.next_event()).type is ChannelEventType.READ_ACK

    @pytest.mark.asyncio
    async def test_emit_before_connect_raises(self):
        channel, _ = make_channel(0, [])
        with pytest.raises(MessageError):
            await channel.send_message("room-1", "text", "hello")


class TestClose:
    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        channel, factory = make_channel(0, [])
        await channel.connect("tok", "sess")

        await channel.close()
        await channel.close()

        assert factory.clients[0].disconnect_calls == 1
        assert (await channel.next_event()).type is ChannelEventType.DISCONNECTED
        assert channel._events.empty()
        with pytest.raises(MessageError):
            await channel.join_room("room-1")


class TestChannelEvent:
    def test_describe(self):
        assert ChannelEvent(ChannelEventType.JOIN_REJECTED, {"message": "nope"}).describe() == "nope"
        assert ChannelEvent(ChannelEventType.DISCONNECTED, "transport close").describe() == (
            "transport close"
        )
        assert ChannelEvent(ChannelEventType.CHANNEL_ERROR).describe() == "unknown"

    def test_message_id_missing(self):
        assert ChannelEvent(ChannelEventType.MESSAGE_RECEIVED, {"content": "x"}).message_id is None
