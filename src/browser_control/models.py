"""Shared models used across the browser control engine."""

from __future__ import annotations

import enum
import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _milliseconds_to_seconds(value: Any) -> float:
    try:
        return float(value) / 1000
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"wait duration must be a number, got {value!r}") from exc


class ActionKind(str, enum.Enum):
    """Enumerated browser commands that a session can execute."""

    NAVIGATE = "navigate"
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    WAIT = "wait"
    SCREENSHOT = "screenshot"
    PAGE_INFO = "page_info"


class ActionOrigin(str, enum.Enum):
    """Whether an action was sent by the caller or derived from free text."""

    DIRECT = "direct"
    TRANSLATED = "translated"


class ScrollDirection(str, enum.Enum):
    UP = "up"
    DOWN = "down"


class ResultSource(str, enum.Enum):
    """Provenance tag distinguishing real-browser results from simulated ones."""

    REAL = "real"
    SIMULATED = "simulated"


class SessionStatus(str, enum.Enum):
    """Lifecycle states of a browser session."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    PAUSED = "paused"
    STOPPED = "stopped"
    CLOSED = "closed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in {SessionStatus.STOPPED, SessionStatus.CLOSED, SessionStatus.ERROR}


class Action(BaseModel):
    """An immutable instruction for a browser driver."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    kind: ActionKind = Field(validation_alias=AliasChoices("kind", "type", "action"))
    url: Optional[str] = None
    locator: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("locator", "selector"),
    )
    text: Optional[str] = None
    direction: ScrollDirection = ScrollDirection.DOWN
    amount: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("amount", "pixels"),
        description="Number of pixels to scroll.",
    )
    seconds: Optional[float] = Field(default=None, description="Duration of a wait action.")
    origin: ActionOrigin = ActionOrigin.DIRECT
    instruction: Optional[str] = Field(
        default=None,
        description="Free-text instruction this action was translated from.",
    )

    @model_validator(mode="before")
    @classmethod
    def _flatten_params(cls, data: Any) -> Any:
        # Chat models tend to answer {"action": "click", "params": {...}}.
        if isinstance(data, dict) and isinstance(data.get("params"), dict):
            merged = {k: v for k, v in data.items() if k != "params"}
            for key, value in data["params"].items():
                merged.setdefault(key, value)
            for key in ("milliseconds", "ms"):
                if key in merged and "seconds" not in merged:
                    merged["seconds"] = _milliseconds_to_seconds(merged.pop(key))
            return merged
        return data

    @model_validator(mode="after")
    def _check_parameters(self) -> "Action":
        if self.kind is ActionKind.NAVIGATE and not self.url:
            raise ValueError("navigate action requires a url")
        if self.kind in {ActionKind.CLICK, ActionKind.TYPE} and not self.locator:
            raise ValueError(f"{self.kind.value} action requires a locator")
        if self.kind is ActionKind.TYPE and self.text is None:
            raise ValueError("type action requires text")
        if self.amount is not None and self.amount < 0:
            raise ValueError("scroll amount must not be negative")
        if self.seconds is not None and self.seconds < 0:
            raise ValueError("wait duration must not be negative")
        return self

    def describe(self) -> str:
        """Short human readable description used in logs."""

        if self.kind is ActionKind.NAVIGATE:
            return f"navigate {self.url}"
        if self.kind is ActionKind.CLICK:
            return f"click {self.locator}"
        if self.kind is ActionKind.TYPE:
            return f"type into {self.locator}"
        if self.kind is ActionKind.SCROLL:
            return f"scroll {self.direction.value} {self.amount or ''}".strip()
        if self.kind is ActionKind.WAIT:
            return f"wait {self.seconds if self.seconds is not None else ''}".strip()
        return self.kind.value


class ActionResult(BaseModel):
    """Outcome of executing one action."""

    success: bool
    action: ActionKind
    source: ResultSource
    url: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = Field(default=None, description="Error code when success is false.")
    message: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=_utcnow)


class PageInfo(BaseModel):
    """Context about the current page, fed to the instruction translator."""

    url: str
    title: str = ""
    viewport_width: int = 0
    viewport_height: int = 0


class Frame(BaseModel):
    """A single screenshot capture."""

    data: bytes
    mime_type: str = "image/jpeg"
    url: Optional[str] = None
    source: ResultSource = ResultSource.REAL
    sequence: int = 0
    timestamp: float = Field(default_factory=time.monotonic)
    captured_at: datetime = Field(default_factory=_utcnow)


class SessionInfo(BaseModel):
    """Caller-visible metadata of a browser session."""

    id: str
    owner_id: str
    status: SessionStatus = SessionStatus.UNINITIALIZED
    current_url: Optional[str] = None
    last_action: Optional[str] = None
    source: Optional[ResultSource] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    error: Optional[str] = None


class InitResult(BaseModel):
    """Returned by session initialisation."""

    success: bool = True
    session_id: str
    status: SessionStatus
    source: Optional[ResultSource] = None
    reused: bool = Field(
        default=False,
        description="True when the session was already initialised.",
    )


class ActionRecord(BaseModel):
    """Action/result pair appended to the history store."""

    session_id: str
    owner_id: str
    action: Action
    result: ActionResult
    recorded_at: datetime = Field(default_factory=_utcnow)
