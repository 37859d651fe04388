"""Route control messages to the session manager."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from ..errors import BrowserControlError
from ..session.manager import SessionManager
from .protocol import (
    CommandResponse,
    ErrorMessage,
    InboundMessage,
    InitResponse,
    MessageType,
    OutboundMessage,
    ScreenshotMessage,
    StateResponse,
)

LOGGER = logging.getLogger(__name__)

INVALID_MESSAGE = "InvalidMessage"
INTERNAL_ERROR = "InternalError"


class ControlRouter:
    """Turn one inbound message into exactly one outbound message.

    Engine errors never escape: they are reported in the response with
    ``success`` set to false and the error's code.
    """

    def __init__(self, manager: SessionManager) -> None:
        self._manager = manager

    async def handle(
        self,
        session_id: str,
        owner_id: str,
        payload: Mapping[str, Any],
    ) -> OutboundMessage:
        try:
            message = InboundMessage.model_validate(payload)
        except ValidationError as exc:
            LOGGER.info("Rejected malformed message for session %s", session_id)
            return ErrorMessage(
                session_id=session_id,
                error=_first_error(exc),
                code=INVALID_MESSAGE,
            )
        try:
            return await self._route(session_id, owner_id, message)
        except BrowserControlError as exc:
            LOGGER.info("%s failed for session %s: %s", message.type.value, session_id, exc)
            return _failure(session_id, message, exc)
        except Exception as exc:  # noqa: BLE001 - every message gets a response
            LOGGER.exception(
                "Unexpected error handling %s for session %s", message.type.value, session_id
            )
            return ErrorMessage(
                session_id=session_id,
                error=str(exc) or type(exc).__name__,
                code=INTERNAL_ERROR,
            )

    async def _route(
        self,
        session_id: str,
        owner_id: str,
        message: InboundMessage,
    ) -> OutboundMessage:
        kind = message.type
        if kind is MessageType.INIT:
            result = await self._manager.init(session_id, message.owner_id or owner_id)
            return InitResponse(
                session_id=session_id,
                status=result.status,
                source=result.source,
                reused=result.reused,
            )
        if kind is MessageType.COMMAND:
            if message.action is not None:
                action = message.action
                result = await self._manager.dispatch(session_id, action)
            else:
                action, result = await self._manager.run_instruction(
                    session_id, message.message or ""
                )
            return CommandResponse(
                success=result.success,
                session_id=session_id,
                action=action,
                result=result,
                original_message=message.message,
                error=result.message if not result.success else None,
                code=result.error,
            )
        if kind is MessageType.SCREENSHOT:
            frame = await self._manager.capture(session_id)
            return ScreenshotMessage.from_frame(session_id, frame)
        if kind is MessageType.PAUSE:
            info = await self._manager.pause(session_id)
        elif kind is MessageType.RESUME:
            info = await self._manager.resume(session_id)
        elif kind is MessageType.STOP:
            info = await self._manager.stop(session_id)
        else:
            info = await self._manager.close(session_id)
        return StateResponse.for_session(kind, info)


def _failure(session_id: str, message: InboundMessage, exc: BrowserControlError) -> OutboundMessage:
    if message.type is MessageType.INIT:
        return InitResponse(success=False, session_id=session_id, error=str(exc), code=exc.code)
    if message.type is MessageType.COMMAND:
        return CommandResponse(
            success=False,
            session_id=session_id,
            original_message=message.message,
            error=str(exc),
            code=exc.code,
        )
    if message.type is MessageType.SCREENSHOT:
        return ErrorMessage(session_id=session_id, error=str(exc), code=exc.code)
    return StateResponse(
        type=f"{message.type.value}_response",
        success=False,
        session_id=session_id,
        error=str(exc),
        code=exc.code,
    )


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid message"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
