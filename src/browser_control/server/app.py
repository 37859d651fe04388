"""FastAPI application exposing the control protocol over WebSocket and HTTP."""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Query, Request, Response, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import EngineConfig
from ..errors import (
    BrowserControlError,
    DriverUnavailable,
    SessionError,
    SessionNotFound,
    TranslationFailed,
    TransportError,
)
from ..factory import build_session_manager
from ..models import Action, ActionRecord, Frame, InitResult, SessionInfo
from ..session.manager import SessionManager
from .protocol import CommandResponse, ErrorMessage, ScreenshotMessage
from .routing import INTERNAL_ERROR, INVALID_MESSAGE, ControlRouter

LOGGER = logging.getLogger(__name__)


# Request models --------------------------------------------------------------


class SessionCreateRequest(BaseModel):
    owner_id: str
    session_id: Optional[str] = None


class SessionInitRequest(BaseModel):
    owner_id: Optional[str] = None


class CommandRequest(BaseModel):
    message: Optional[str] = None
    action: Optional[Action] = None


# Error mapping ---------------------------------------------------------------


def _status_for(exc: BrowserControlError) -> int:
    if isinstance(exc, SessionNotFound):
        return 404
    if isinstance(exc, SessionError):
        return 409
    if isinstance(exc, DriverUnavailable):
        return 503
    if isinstance(exc, TranslationFailed):
        return 502
    return 500


def _error_body(error: str, code: str) -> Dict[str, Any]:
    return {"success": False, "error": error, "code": code}


# WebSocket channel -----------------------------------------------------------


class ControlChannel:
    """One WebSocket connection bound to one session.

    Responses and pushed frames share the socket, so every send goes through
    a single lock.
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: SessionManager,
        session_id: str,
        owner_id: str,
    ) -> None:
        self._websocket = websocket
        self._manager = manager
        self._router = ControlRouter(manager)
        self._send_lock = asyncio.Lock()
        self.session_id = session_id
        self.owner_id = owner_id
        self._attached = False

    async def send(self, payload: Dict[str, Any]) -> None:
        async with self._send_lock:
            await self._websocket.send_json(payload)

    async def push_frame(self, frame: Frame) -> None:
        try:
            await self.send(ScreenshotMessage.from_frame(self.session_id, frame).to_wire())
        except Exception as exc:  # noqa: BLE001 - any send failure means the client is gone
            raise TransportError(f"Failed to push frame: {exc}") from exc

    async def serve(self) -> None:
        while True:
            raw = await self._websocket.receive_text()
            try:
                payload = json.loads(raw)
            except ValueError:
                await self.send(
                    ErrorMessage(
                        session_id=self.session_id,
                        error="Message is not valid JSON",
                        code=INVALID_MESSAGE,
                    ).to_wire()
                )
                continue
            if not isinstance(payload, dict):
                await self.send(
                    ErrorMessage(
                        session_id=self.session_id,
                        error="Message must be a JSON object",
                        code=INVALID_MESSAGE,
                    ).to_wire()
                )
                continue
            response = await self._router.handle(self.session_id, self.owner_id, payload)
            await self.send(response.to_wire())
            if response.type == "init_response" and response.success:
                self._attach()

    def _attach(self) -> None:
        if self._attached:
            return
        self._manager.attach_sink(self.session_id, self.push_frame)
        self._attached = True

    async def release(self, close_session: bool) -> None:
        if self._attached:
            await self._manager.detach_sink(self.session_id, self.push_frame)
            self._attached = False
        if close_session:
            try:
                await self._manager.close(self.session_id)
            except SessionNotFound:
                pass


# Application factory ---------------------------------------------------------


def create_app(
    config: Optional[EngineConfig] = None,
    manager: Optional[SessionManager] = None,
) -> FastAPI:
    config = config or EngineConfig()
    manager = manager or build_session_manager(config)
    page_size = config.history.page_size

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        _app.state.started_at = time.monotonic()
        yield
        LOGGER.info("Shutting down; closing %d session(s)", manager.active_count)
        await manager.shutdown()

    app = FastAPI(title="Browser Control Engine", lifespan=lifespan)
    app.state.manager = manager
    app.state.config = config
    app.state.started_at = time.monotonic()

    @app.exception_handler(BrowserControlError)
    async def handle_engine_error(request: Request, exc: BrowserControlError) -> JSONResponse:
        return JSONResponse(status_code=_status_for(exc), content=_error_body(str(exc), exc.code))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(status_code=422, content=_error_body(str(detail), INVALID_MESSAGE))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body(str(exc) or type(exc).__name__, INTERNAL_ERROR),
        )

    @app.get("/health")
    async def get_health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "sessions": manager.session_count,
            "active_sessions": manager.active_count,
            "uptime_seconds": round(time.monotonic() - app.state.started_at, 3),
        }

    @app.get("/sessions", response_model=List[SessionInfo])
    async def list_sessions() -> List[SessionInfo]:
        return manager.list_sessions()

    @app.post("/sessions", response_model=SessionInfo, status_code=201)
    async def create_session(payload: SessionCreateRequest) -> SessionInfo:
        return await manager.create(payload.owner_id, payload.session_id)

    @app.get("/sessions/{session_id}", response_model=SessionInfo)
    async def get_session(session_id: str) -> SessionInfo:
        return manager.get(session_id)

    @app.post("/sessions/{session_id}/init", response_model=InitResult)
    async def init_session(
        session_id: str,
        payload: Optional[SessionInitRequest] = None,
    ) -> InitResult:
        owner_id = payload.owner_id if payload else None
        return await manager.init(session_id, owner_id)

    @app.post("/sessions/{session_id}/command")
    async def run_command(session_id: str, payload: CommandRequest) -> Dict[str, Any]:
        if payload.action is None and payload.message is None:
            return JSONResponse(
                status_code=422,
                content=_error_body("command requires a 'message' or an 'action'", INVALID_MESSAGE),
            )
        if payload.action is not None:
            action = payload.action
            result = await manager.dispatch(session_id, action)
        else:
            action, result = await manager.run_instruction(session_id, payload.message or "")
        return CommandResponse(
            success=result.success,
            session_id=session_id,
            action=action,
            result=result,
            original_message=payload.message,
            error=result.message if not result.success else None,
            code=result.error,
        ).to_wire()

    @app.post("/sessions/{session_id}/pause", response_model=SessionInfo)
    async def pause_session(session_id: str) -> SessionInfo:
        return await manager.pause(session_id)

    @app.post("/sessions/{session_id}/resume", response_model=SessionInfo)
    async def resume_session(session_id: str) -> SessionInfo:
        return await manager.resume(session_id)

    @app.post("/sessions/{session_id}/stop", response_model=SessionInfo)
    async def stop_session(session_id: str) -> SessionInfo:
        return await manager.stop(session_id)

    @app.post("/sessions/{session_id}/close", response_model=SessionInfo)
    async def close_session(session_id: str) -> SessionInfo:
        return await manager.close(session_id)

    @app.get("/sessions/{session_id}/actions", response_model=List[ActionRecord])
    async def list_actions(
        session_id: str,
        limit: int = Query(default=page_size, ge=1),
    ) -> List[ActionRecord]:
        manager.get(session_id)
        return manager.history.list_actions(session_id, min(limit, page_size))

    @app.get("/sessions/{session_id}/screenshot")
    async def take_screenshot(session_id: str) -> Response:
        frame = await manager.capture(session_id)
        return _frame_response(frame)

    @app.get("/sessions/{session_id}/frame")
    async def latest_frame(session_id: str) -> Response:
        frame = manager.latest_frame(session_id)
        if frame is None:
            return Response(status_code=204)
        return JSONResponse(ScreenshotMessage.from_frame(session_id, frame).to_wire())

    @app.websocket("/ws")
    async def control_socket(
        websocket: WebSocket,
        session_id: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        await websocket.accept()
        channel = ControlChannel(
            websocket,
            manager,
            session_id or uuid.uuid4().hex,
            owner_id or f"owner-{uuid.uuid4().hex[:8]}",
        )
        LOGGER.info("Client connected to session %s", channel.session_id)
        try:
            await channel.serve()
        except WebSocketDisconnect:
            LOGGER.info("Client disconnected from session %s", channel.session_id)
        finally:
            await channel.release(config.server.close_sessions_on_disconnect)

    return app


def _frame_response(frame: Frame) -> Response:
    headers = {"X-Frame-Source": frame.source.value}
    return Response(content=frame.data, media_type=frame.mime_type, headers=headers)
