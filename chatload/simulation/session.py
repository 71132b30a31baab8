"""One simulated user's lifecycle, modelled as an explicit state machine.

A session authenticates over REST, opens its channel, joins the target room,
sends ``messages_per_user`` chat messages with a random think time between
them, waits out the drain window and closes. Inbound channel events are
consumed by a per-session receive loop that maps each event to a handler.

Every failure is contained: it bumps the matching counter, writes an activity
line and ends this session only.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
import time
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

import structlog

from chatload.clients.api import Credential, simulated_identity
from chatload.clients.channel import Channel, ChannelEvent, ChannelEventType
from chatload.config import RunConfig
from chatload.metrics.activity import ActivityLog
from chatload.metrics.aggregator import Counter, MetricsAggregator
from chatload.shared.errors import AuthError, ChannelConnectionError, MessageError

logger = structlog.get_logger()


class SessionState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINING_ROOM = "joining_room"
    IN_ROOM = "in_room"
    SENDING = "sending"
    DRAINING = "draining"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.CLOSED, SessionState.FAILED})


class AuthApi(Protocol):
    async def authenticate(self, email: str, password: str, name: str) -> Credential: ...


class SimulatedSession:
    """Drives a single simulated user from credential acquisition to close."""

    def __init__(
        self,
        user_id: int | str,
        room_id: str,
        config: RunConfig,
        api: AuthApi,
        channel: Channel,
        metrics: MetricsAggregator,
        activity: ActivityLog,
        *,
        stop_event: asyncio.Event | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.user_id = user_id
        self.room_id = room_id
        self.config = config
        self._api = api
        self._channel = channel
        self._metrics = metrics
        self._activity = activity
        self._stop = stop_event or asyncio.Event()
        self._rng = rng or random.Random()
        self._clock = clock

        self.state = SessionState.UNAUTHENTICATED
        self.history: list[SessionState] = [self.state]
        self.credential: Credential | None = None
        self.connect_start: float | None = None
        self.send_timestamps: list[float] = []

        self._channel_open = False
        self._disconnect_recorded = False
        self._remote_closed = asyncio.Event()
        self._join_result: asyncio.Future[ChannelEvent] | None = None

    @property
    def display_name(self) -> str:
        if self.credential and self.credential.user_name:
            return self.credential.user_name
        return f"User-{self.user_id}"

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _transition(self, new_state: SessionState) -> None:
        if self.is_terminal:
            return
        logger.debug(
            "session_transition",
            user_id=self.user_id,
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)

    def _count(self, counter: Counter) -> None:
        if not self.is_terminal:
            self._metrics.increment(counter)

    def _fail(self, counter: Counter, message: str) -> SessionState:
        self._count(counter)
        self._activity.error(message, user_id=self.user_id)
        self._transition(SessionState.FAILED)
        return self.state

    # ---- lifecycle ------------------------------------------------------------

    async def run(self) -> SessionState:
        """Run the whole lifecycle and return the terminal state."""
        self.connect_start = self._clock()
        try:
            if not await self._authenticate():
                return self.state
            if not await self._connect():
                return self.state

            receiver = asyncio.create_task(
                self._receive_loop(), name=f"session-{self.user_id}-receiver"
            )
            try:
                if await self._join_room():
                    await self._send_messages()
                    await self._drain()
            finally:
                await self.close("io client disconnect")
                receiver.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await receiver
        except asyncio.CancelledError:
            await self.close("run cancelled")
            raise
        return self.state

    async def _authenticate(self) -> bool:
        self._transition(SessionState.AUTHENTICATING)
        email, name = simulated_identity(self.user_id)
        try:
            credential = await self._api.authenticate(email, self.config.password, name)
        except AuthError as exc:
            self._fail(Counter.ERRORS_AUTH, f"Failed to create/login user {self.user_id}: {exc}")
            return False

        self._count(Counter.USERS_CREATED)
        if not credential.is_complete:
            self._fail(
                Counter.ERRORS_AUTH,
                f"User {self.user_id} missing token/sessionId: "
                f"token={credential.token}, sessionId={credential.session_id}",
            )
            return False

        self.credential = credential
        self._transition(SessionState.AUTHENTICATED)
        return True

    async def _connect(self) -> bool:
        assert self.credential is not None
        self._transition(SessionState.CONNECTING)
        try:
            await self._channel.connect(self.credential.token, self.credential.session_id)
        except ChannelConnectionError as exc:
            self._fail(Counter.ERRORS_CONNECTION, f"User {self.user_id} connection error: {exc}")
            return False

        self._channel_open = True
        assert self.connect_start is not None
        connection_ms = (self._clock() - self.connect_start) * 1000.0
        self._metrics.increment(Counter.CONNECTED)
        self._metrics.record_connection_time(connection_ms)
        self._transition(SessionState.CONNECTED)
        self._activity.success(
            f"User {self.user_id} ({self.display_name}) connected in {connection_ms:.0f}ms",
            user_id=self.user_id,
        )
        return True

    async def _join_room(self) -> bool:
        self._transition(SessionState.JOINING_ROOM)
        self._join_result = asyncio.get_running_loop().create_future()
        try:
            await self._channel.join_room(self.room_id)
        except MessageError as exc:
            self._count(Counter.ERRORS_CONNECTION)
            self._activity.error(
                f"User {self.user_id} failed to join room: {exc}", user_id=self.user_id
            )
            return False

        event = await self._wait_for(self._join_result)
        if event is None:
            return False
        if event.type is ChannelEventType.JOIN_REJECTED:
            self._count(Counter.ERRORS_CONNECTION)
            self._activity.error(
                f"User {self.user_id} failed to join room: {event.describe()}",
                user_id=self.user_id,
            )
            return False

        self._transition(SessionState.IN_ROOM)
        self._activity.info(
            f"User {self.user_id} joined room {self.room_id} "
            f"with {event.participant_count} participants",
            user_id=self.user_id,
        )
        return True

    async def _send_messages(self) -> None:
        self._transition(SessionState.SENDING)
        total = self.config.messages_per_user
        for index in range(1, total + 1):
            think_ms = self._rng.uniform(self.config.think_time_min_ms, self.config.think_time_max_ms)
            await self._pause(think_ms / 1000.0, interruptible=True)
            if self._stop.is_set() or self._remote_closed.is_set():
                break

            content = (
                f"Load test message {index}/{total} from user {self.user_id} "
                f"at {datetime.now(UTC).isoformat()}"
            )
            started = self._clock()
            try:
                await self._channel.send_message(self.room_id, "text", content)
            except MessageError as exc:
                self._count(Counter.ERRORS_MESSAGE)
                self._activity.error(
                    f"User {self.user_id} failed to send message {index}: {exc}",
                    user_id=self.user_id,
                )
                continue
            self.send_timestamps.append(started)
            self._count(Counter.MESSAGES_SENT)
            self._metrics.record_latency((self._clock() - started) * 1000.0)

    async def _drain(self) -> None:
        """Give in-flight inbound messages time to arrive before closing."""
        self._transition(SessionState.DRAINING)
        await self._pause(self.config.drain_seconds, interruptible=False)

    async def close(self, reason: str = "io client disconnect") -> None:
        """Close the channel and move to CLOSED. Safe to call repeatedly."""
        if self.is_terminal:
            return
        if self._channel_open:
            self._channel_open = False
            try:
                await self._channel.close()
            except Exception:
                logger.warning("channel_close_failed", user_id=self.user_id, exc_info=True)
            self._record_disconnect(reason)
        self._transition(SessionState.CLOSED)

    def _record_disconnect(self, reason: str) -> None:
        if self._disconnect_recorded or self.is_terminal:
            return
        self._disconnect_recorded = True
        self._metrics.increment(Counter.DISCONNECTED)
        self._activity.warn(f"User {self.user_id} disconnected: {reason}", user_id=self.user_id)

    # ---- suspension helpers -----------------------------------------------------

    async def _pause(self, seconds: float, *, interruptible: bool) -> None:
        """Sleep for ``seconds`` unless the channel drops (or, if interruptible, the run stops)."""
        waiters = [asyncio.ensure_future(self._remote_closed.wait())]
        if interruptible:
            waiters.append(asyncio.ensure_future(self._stop.wait()))
        try:
            await asyncio.wait(waiters, timeout=max(0.0, seconds), return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def _wait_for(self, future: asyncio.Future[ChannelEvent]) -> ChannelEvent | None:
        """Wait for ``future`` unless the channel closes or the run stops first."""
        waiters = {
            asyncio.ensure_future(self._remote_closed.wait()),
            asyncio.ensure_future(self._stop.wait()),
        }
        try:
            await asyncio.wait({future, *waiters}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()
        if future.done():
            return future.result()
        future.cancel()
        return None

    # ---- inbound events ---------------------------------------------------------

    async def _receive_loop(self) -> None:
        while not self._remote_closed.is_set():
            event = await self._channel.next_event()
            await self._dispatch(event)

    async def _dispatch(self, event: ChannelEvent) -> None:
        if self.is_terminal:
            return
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("channel_event_ignored", user_id=self.user_id, event_type=event.type)
            return
        await handler(self, event)

    async def _on_join_result(self, event: ChannelEvent) -> None:
        if self._join_result is not None and not self._join_result.done():
            self._join_result.set_result(event)

    async def _on_message(self, event: ChannelEvent) -> None:
        self._count(Counter.MESSAGES_RECEIVED)
        message_id = event.message_id
        if message_id is None:
            return
        try:
            await self._channel.mark_read(self.room_id, [message_id])
        except MessageError as exc:
            self._count(Counter.ERRORS_MESSAGE)
            self._activity.error(
                f"User {self.user_id} failed to mark message read: {exc}", user_id=self.user_id
            )
            return
        self._count(Counter.MESSAGES_READ)

    async def _on_read_ack(self, event: ChannelEvent) -> None:
        self._count(Counter.READ_ACKS_RECEIVED)

    async def _on_channel_error(self, event: ChannelEvent) -> None:
        self._count(Counter.ERRORS_MESSAGE)
        self._activity.error(
            f"User {self.user_id} received error: {event.describe()}", user_id=self.user_id
        )

    async def _on_connect_error(self, event: ChannelEvent) -> None:
        self._count(Counter.ERRORS_CONNECTION)
        self._activity.error(
            f"User {self.user_id} connection error: {event.describe()}", user_id=self.user_id
        )
        self._record_disconnect(event.describe())
        self._remote_closed.set()

    async def _on_disconnected(self, event: ChannelEvent) -> None:
        self._record_disconnect(event.describe())
        self._remote_closed.set()

    _handlers = {
        ChannelEventType.JOIN_ACCEPTED: _on_join_result,
        ChannelEventType.JOIN_REJECTED: _on_join_result,
        ChannelEventType.MESSAGE_RECEIVED: _on_message,
        ChannelEventType.READ_ACK: _on_read_ack,
        ChannelEventType.CHANNEL_ERROR: _on_channel_error,
        ChannelEventType.CONNECT_ERROR: _on_connect_error,
        ChannelEventType.DISCONNECTED: _on_disconnected,
    }
