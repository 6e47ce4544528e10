import logging
from typing import Any

import httpx
from pydantic import ValidationError

from liftsync.config import settings
from liftsync.core.exceptions import (
    ConflictError,
    InvariantViolation,
    LiftSyncError,
    NotFoundError,
    TransientSyncError,
    UnauthorizedError,
)
from liftsync.schemas.sessions import SessionUpdatePayload
from liftsync.schemas.sync import SyncAck

logger = logging.getLogger(__name__)

WireRows = list[dict[str, Any]]

TOKEN_PATH = "/users/token"


class SyncTransport:
    """Where the orchestrator sends the outbox. Every call raises on failure."""

    async def ensure_token(self, user: dict[str, Any]) -> str:
        raise NotImplementedError

    async def push(self, endpoint: str, rows: WireRows) -> SyncAck:
        raise NotImplementedError

    async def delete_rows(self, rows: WireRows) -> SyncAck:
        raise NotImplementedError

    async def update_session(self, payload: SessionUpdatePayload) -> dict[str, Any]:
        raise NotImplementedError

    async def sync_users(self, rows: WireRows) -> SyncAck:
        return await self.push("users", rows)

    async def sync_exercises(self, rows: WireRows) -> SyncAck:
        return await self.push("exercises", rows)

    async def sync_workouts(self, rows: WireRows) -> SyncAck:
        return await self.push("workouts", rows)

    async def sync_workout_exercises(self, rows: WireRows) -> SyncAck:
        return await self.push("workout-exercises", rows)

    async def sync_sets(self, rows: WireRows) -> SyncAck:
        return await self.push("sets", rows)

    async def sync_sessions(self, rows: WireRows) -> SyncAck:
        return await self.push("sessions", rows)

    async def sync_session_exercises(self, rows: WireRows) -> SyncAck:
        return await self.push("session-exercises", rows)

    async def sync_session_sets(self, rows: WireRows) -> SyncAck:
        return await self.push("session-sets", rows)


def _raise_for_status(response: httpx.Response) -> None:
    if response.status_code < 400:
        return
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = (body.get("detail") if isinstance(body, dict) else None) or f"HTTP {response.status_code}"
    code = response.status_code
    if code >= 500:
        raise TransientSyncError(str(detail))
    if code in (401, 403):
        raise UnauthorizedError(str(detail))
    if code == 404:
        raise NotFoundError(str(detail))
    if code == 409:
        raise ConflictError(str(detail))
    if code in (400, 422):
        raise InvariantViolation(str(detail))
    raise LiftSyncError(str(detail))


def _ack(data: Any) -> SyncAck:
    try:
        return SyncAck.model_validate(data)
    except ValidationError as exc:
        raise InvariantViolation(f"Malformed sync acknowledgement: {exc.error_count()} errors") from exc


class HttpSyncTransport(SyncTransport):
    """Talks to the liftsync API over HTTP.

    Pass ``client`` to reuse a connection pool or to route requests to an
    in-process app; otherwise one ``httpx.AsyncClient`` is created per call.
    A rejected token is dropped and, once per request, re-issued for the
    last user passed to ``ensure_token``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.SYNC_API_URL).rstrip("/")
        self.client = client
        self.token = token
        self.timeout = timeout if timeout is not None else settings.SYNC_TIMEOUT_SECONDS
        self._user: dict[str, Any] | None = None

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    async def _request(self, method: str, path: str, payload: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self.client is not None:
                return await self.client.request(method, url, json=payload, headers=self._headers())
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, json=payload, headers=self._headers())
        except httpx.TransportError as exc:
            logger.warning("%s %s failed in transport: %r", method, path, exc)
            raise TransientSyncError(f"Server unreachable: {exc!r}") from exc

    async def _send(self, method: str, path: str, payload: Any, *, reauthenticate: bool = True) -> Any:
        response = await self._request(method, path, payload)

        if response.status_code == 401 and path != TOKEN_PATH:
            self.token = None
            if reauthenticate and self._user is not None:
                logger.info("Sync token rejected on %s %s; requesting a new one", method, path)
                await self.ensure_token(self._user)
                return await self._send(method, path, payload, reauthenticate=False)

        _raise_for_status(response)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            # A captive portal or proxy page; try again next cycle.
            raise TransientSyncError(f"{method} {path} returned a non-JSON body") from exc
        return body.get("data", body) if isinstance(body, dict) else body

    async def ensure_token(self, user: dict[str, Any]) -> str:
        self._user = user
        if self.token:
            return self.token
        data = await self._send("POST", TOKEN_PATH, user)
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise InvariantViolation("Token response carried no access token")
        self.token = token
        logger.info("Issued sync token for user %s", user.get("id"))
        return self.token

    async def push(self, endpoint: str, rows: WireRows) -> SyncAck:
        return _ack(await self._send("POST", f"/sync/{endpoint}", rows))

    async def sync_users(self, rows: WireRows) -> SyncAck:
        for row in rows:
            await self._send("POST", "/users/sync", row)
        return SyncAck(accepted=len(rows), ids=[row["id"] for row in rows])

    async def delete_rows(self, rows: WireRows) -> SyncAck:
        return _ack(await self._send("POST", "/sync/deleted-rows", rows))

    async def update_session(self, payload: SessionUpdatePayload) -> dict[str, Any]:
        return await self._send("PUT", f"/sessions/{payload.session_id}", payload.to_wire())
