"""HTTP client for the discrete-call surface of a running control server."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

from .models import Action, ActionRecord, ActionResult, InitResult, SessionInfo


class ServerHealth(BaseModel):
    status: str
    sessions: int
    active_sessions: int
    uptime_seconds: float


class CommandOutcome(BaseModel):
    success: bool
    session_id: Optional[str] = None
    action: Optional[Action] = None
    result: Optional[ActionResult] = None
    original_message: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None


class ControlClient:
    """Wrapper around the control server HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def get_health(self) -> ServerHealth:
        async with self._client() as client:
            response = await client.get("/health")
            response.raise_for_status()
            data = response.json()
        return ServerHealth.model_validate(data)

    async def list_sessions(self) -> List[SessionInfo]:
        async with self._client() as client:
            response = await client.get("/sessions")
            response.raise_for_status()
            data = response.json()
        return [SessionInfo.model_validate(item) for item in data]

    async def create_session(self, owner_id: str, session_id: Optional[str] = None) -> SessionInfo:
        payload: Dict[str, Any] = {"owner_id": owner_id}
        if session_id:
            payload["session_id"] = session_id
        async with self._client() as client:
            response = await client.post("/sessions", json=payload)
            response.raise_for_status()
            data = response.json()
        return SessionInfo.model_validate(data)

    async def get_session(self, session_id: str) -> SessionInfo:
        async with self._client() as client:
            response = await client.get(f"/sessions/{session_id}")
            response.raise_for_status()
            data = response.json()
        return SessionInfo.model_validate(data)

    async def init(self, session_id: str, owner_id: Optional[str] = None) -> InitResult:
        async with self._client() as client:
            response = await client.post(
                f"/sessions/{session_id}/init",
                json={"owner_id": owner_id} if owner_id else None,
            )
            response.raise_for_status()
            data = response.json()
        return InitResult.model_validate(data)

    async def command(
        self,
        session_id: str,
        *,
        message: Optional[str] = None,
        action: Optional[Action] = None,
    ) -> CommandOutcome:
        payload: Dict[str, Any] = {}
        if message is not None:
            payload["message"] = message
        if action is not None:
            payload["action"] = action.model_dump(mode="json", exclude_none=True)
        async with self._client() as client:
            response = await client.post(f"/sessions/{session_id}/command", json=payload)
            response.raise_for_status()
            data = response.json()
        return CommandOutcome.model_validate(data)

    async def pause(self, session_id: str) -> SessionInfo:
        return await self._transition(session_id, "pause")

    async def resume(self, session_id: str) -> SessionInfo:
        return await self._transition(session_id, "resume")

    async def stop(self, session_id: str) -> SessionInfo:
        return await self._transition(session_id, "stop")

    async def close(self, session_id: str) -> SessionInfo:
        return await self._transition(session_id, "close")

    async def list_actions(self, session_id: str, *, limit: Optional[int] = None) -> List[ActionRecord]:
        params = {"limit": limit} if limit is not None else None
        async with self._client() as client:
            response = await client.get(f"/sessions/{session_id}/actions", params=params)
            response.raise_for_status()
            data = response.json()
        return [ActionRecord.model_validate(item) for item in data]

    async def screenshot(self, session_id: str) -> bytes:
        async with self._client() as client:
            response = await client.get(f"/sessions/{session_id}/screenshot")
            response.raise_for_status()
            return response.content

    async def _transition(self, session_id: str, operation: str) -> SessionInfo:
        async with self._client() as client:
            response = await client.post(f"/sessions/{session_id}/{operation}")
            response.raise_for_status()
            data = response.json()
        return SessionInfo.model_validate(data)
