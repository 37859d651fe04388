"""Message models exchanged over the control channel."""

from __future__ import annotations

import base64
import enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models import Action, ActionResult, Frame, ResultSource, SessionInfo, SessionStatus


class MessageType(str, enum.Enum):
    INIT = "init"
    COMMAND = "command"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    CLOSE = "close"
    SCREENSHOT = "screenshot"


class InboundMessage(BaseModel):
    """A request sent by a client.

    ``command`` carries either free text in ``message`` or a structured
    ``action``; the structured form wins when both are present.
    """

    model_config = ConfigDict(extra="ignore")

    type: MessageType
    message: Optional[str] = None
    action: Optional[Action] = None
    owner_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_command(self) -> "InboundMessage":
        if self.type is MessageType.COMMAND and self.action is None and self.message is None:
            raise ValueError("command requires a 'message' or an 'action'")
        return self


# Outbound messages -----------------------------------------------------------


class OutboundMessage(BaseModel):
    type: str
    success: bool = True
    session_id: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class InitResponse(OutboundMessage):
    type: Literal["init_response"] = "init_response"
    status: Optional[SessionStatus] = None
    source: Optional[ResultSource] = None
    reused: bool = False


class CommandResponse(OutboundMessage):
    type: Literal["command_response"] = "command_response"
    action: Optional[Action] = None
    result: Optional[ActionResult] = None
    original_message: Optional[str] = None


class StateResponse(OutboundMessage):
    """Answer to pause, resume, stop and close."""

    status: Optional[SessionStatus] = None

    @classmethod
    def for_session(cls, kind: MessageType, info: SessionInfo) -> "StateResponse":
        return cls(type=f"{kind.value}_response", session_id=info.id, status=info.status)


class ScreenshotMessage(OutboundMessage):
    type: Literal["screenshot"] = "screenshot"
    data: str = ""
    mime_type: str = "image/jpeg"
    url: Optional[str] = None
    timestamp: int = Field(default=0, description="Capture time in epoch milliseconds.")
    source: Optional[ResultSource] = None

    @classmethod
    def from_frame(cls, session_id: str, frame: Frame) -> "ScreenshotMessage":
        return cls(
            session_id=session_id,
            data=base64.b64encode(frame.data).decode("ascii"),
            mime_type=frame.mime_type,
            url=frame.url,
            timestamp=int(frame.captured_at.timestamp() * 1000),
            source=frame.source,
        )


class ErrorMessage(OutboundMessage):
    type: Literal["error"] = "error"
    success: bool = False
    message: Optional[str] = None
