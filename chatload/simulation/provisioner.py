"""Resolves the room every simulated session joins."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol

import httpx
import structlog

from chatload.clients.api import Credential, simulated_identity
from chatload.config import DEFAULT_PASSWORD
from chatload.metrics.activity import ActivityLog
from chatload.shared.errors import AuthError, ProvisioningError

logger = structlog.get_logger()

BOOTSTRAP_USER_ID = "admin"
ROOM_NAME = "Load Test Room"


class RoomApi(Protocol):
    async def authenticate(self, email: str, password: str, name: str) -> Credential: ...

    async def create_room(
        self, name: str, description: str, participants: list[str], bearer_token: str
    ) -> str: ...


class RoomProvisioner:
    """Returns the configured room id, or creates a fresh room as a bootstrap user.

    Any failure raises ``ProvisioningError``; the caller must stop before
    scheduling a single session.
    """

    def __init__(
        self,
        api: RoomApi,
        activity: ActivityLog,
        *,
        password: str = DEFAULT_PASSWORD,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._api = api
        self._activity = activity
        self._password = password
        self._clock = clock

    async def ensure_room(self, room_id: str | None = None) -> str:
        if room_id:
            self._activity.info(f"Using existing room: {room_id}")
            return room_id

        self._activity.info("Creating test room admin user...")
        email, name = simulated_identity(BOOTSTRAP_USER_ID)
        try:
            credential = await self._api.authenticate(email, self._password, name)
        except AuthError as exc:
            self._activity.error(f"Failed to create test room: {exc}")
            raise ProvisioningError(f"bootstrap user authentication failed: {exc}") from exc
        if not credential.token:
            self._activity.error("Failed to create test room: admin credential has no token")
            raise ProvisioningError("bootstrap user credential carried no token")

        self._activity.info("Creating load test room...")
        try:
            new_room_id = await self._api.create_room(
                ROOM_NAME,
                f"Room for load testing - {self._clock().isoformat()}",
                [],
                credential.token,
            )
        except (httpx.HTTPError, ValueError) as exc:
            self._activity.error(f"Failed to create test room: {exc}")
            raise ProvisioningError(f"room creation failed: {exc}") from exc

        self._activity.success(f"Load test room created: {new_room_id}")
        logger.info("room_provisioned", room_id=new_room_id)
        return new_room_id
