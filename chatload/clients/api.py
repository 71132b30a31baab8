"""REST collaborator: authentication and room creation over httpx."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chatload.shared.errors import AuthError

logger = structlog.get_logger()

# Login responses that mean "this account does not exist yet".
REGISTER_FALLBACK_STATUSES = frozenset({401, 404})


class Credential(BaseModel):
    """Canonical credential shape: ``{token, sessionId, user: {name}}``."""

    model_config = ConfigDict(populate_by_name=True)

    token: str | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    user_name: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.token) and bool(self.session_id)

    @classmethod
    def from_payload(cls, payload: Any) -> Credential:
        """Parse an auth response body.

        Some deployments wrap the body in a ``data`` envelope; it is unwrapped
        here so the simulation only ever sees the canonical shape.
        """
        if not isinstance(payload, dict):
            return cls()
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        user = body.get("user") if isinstance(body.get("user"), dict) else {}
        return cls(
            token=body.get("token"),
            session_id=body.get("sessionId"),
            user_name=user.get("name"),
        )


def simulated_identity(user_id: int | str) -> tuple[str, str]:
    """Return ``(email, display name)`` for a simulated user."""
    return f"loadtest-{user_id}@test.com", f"LoadTest User {user_id}"


class ChatApiClient:
    """Thin async client for the chat service's REST endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        auth_timeout_seconds: float = 5.0,
        room_timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        max_connections: int = 200,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_timeout_seconds = auth_timeout_seconds
        self.room_timeout_seconds = room_timeout_seconds
        if transport is None:
            transport = httpx.AsyncHTTPTransport(
                retries=0,
                limits=httpx.Limits(
                    max_connections=max_connections,
                    max_keepalive_connections=max(1, max_connections // 2),
                ),
            )
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def __aenter__(self) -> ChatApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ---- authentication -----------------------------------------------------

    async def _post_auth(self, path: str, body: dict[str, Any]) -> Credential:
        try:
            resp = await self._client.post(path, json=body, timeout=self.auth_timeout_seconds)
        except httpx.HTTPError as exc:
            raise AuthError(f"{path} request failed: {exc!r}") from exc
        if resp.status_code >= 400:
            raise AuthError(
                f"{path} returned status {resp.status_code}", status=resp.status_code
            )
        try:
            payload = resp.json()
        except ValueError as exc:
            raise AuthError(f"{path} returned a non-JSON body", status=resp.status_code) from exc
        try:
            return Credential.from_payload(payload)
        except ValidationError as exc:
            raise AuthError(
                f"{path} returned a malformed credential", status=resp.status_code
            ) from exc

    async def login(self, email: str, password: str) -> Credential:
        return await self._post_auth("/api/auth/login", {"email": email, "password": password})

    async def register(self, email: str, password: str, name: str) -> Credential:
        return await self._post_auth(
            "/api/auth/register", {"email": email, "password": password, "name": name}
        )

    async def authenticate(self, email: str, password: str, name: str) -> Credential:
        """Log in, registering the account first when the login says it is unknown."""
        try:
            return await self.login(email, password)
        except AuthError as exc:
            if exc.status not in REGISTER_FALLBACK_STATUSES:
                raise
        logger.info("registering_user", email=email)
        return await self.register(email, password, name)

    # ---- rooms --------------------------------------------------------------

    async def create_room(
        self,
        name: str,
        description: str,
        participants: list[str],
        bearer_token: str,
    ) -> str:
        """Create a room and return its id. Raises ``httpx.HTTPError`` on failure."""
        resp = await self._client.post(
            "/api/rooms",
            json={"name": name, "description": description, "participants": participants},
            headers={"Authorization": f"Bearer {bearer_token}"},
            timeout=self.room_timeout_seconds,
        )
        resp.raise_for_status()
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError(f"unexpected room creation response: {payload!r}")
        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        room_id = body.get("_id")
        if not room_id:
            raise ValueError(f"room creation response carried no id: {payload!r}")
        return str(room_id)
