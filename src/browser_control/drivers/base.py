"""Browser driver abstractions."""

from __future__ import annotations

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional

from ..config import BrowserConfig
from ..errors import ActionError, ActionFailed
from ..models import (
    Action,
    ActionKind,
    ActionResult,
    Frame,
    PageInfo,
    ResultSource,
    ScrollDirection,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_SCROLL_PIXELS = 500
DEFAULT_WAIT_SECONDS = 1.0


class BrowserDriver(ABC):
    """Interface for a single controllable browser surface.

    Concrete drivers implement the capability primitives; :meth:`execute`
    maps an :class:`Action` onto them and wraps the outcome in an
    :class:`ActionResult`. Per-action failures (:class:`ActionError`) become
    failed results; :class:`~browser_control.errors.DriverUnavailable`
    propagates because it means the driver is gone.
    """

    source: ResultSource

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        self._config = config or BrowserConfig()

    @property
    def config(self) -> BrowserConfig:
        return self._config

    @abstractmethod
    async def start(self) -> None:
        """Acquire the underlying browser."""

    @abstractmethod
    async def stop(self) -> None:
        """Release the underlying browser. Safe to call more than once."""

    @property
    @abstractmethod
    def current_url(self) -> Optional[str]:
        """URL of the page currently shown."""

    @abstractmethod
    async def navigate(self, url: str) -> dict[str, Any]:
        """Load ``url``; return the resolved URL and load duration."""

    @abstractmethod
    async def click(self, locator: str) -> dict[str, Any]:
        """Click the first element matching ``locator``."""

    @abstractmethod
    async def type(self, locator: str, text: str) -> dict[str, Any]:
        """Replace the content of the field matching ``locator`` with ``text``."""

    @abstractmethod
    async def scroll(self, direction: ScrollDirection, amount: int) -> dict[str, Any]:
        """Scroll the page relative to its current position."""

    @abstractmethod
    async def wait(self, seconds: float) -> dict[str, Any]:
        """Pause for ``seconds`` (already capped by the caller)."""

    @abstractmethod
    async def screenshot(self) -> Frame:
        """Capture the visible viewport."""

    @abstractmethod
    async def page_info(self) -> PageInfo:
        """Return URL, title and viewport size of the current page."""

    async def execute(self, action: Action) -> ActionResult:
        handler = self._handlers().get(action.kind)
        started = time.perf_counter()
        LOGGER.debug("Executing %s on %s driver", action.describe(), self.source.value)
        try:
            if handler is None:
                raise ActionFailed(f"Unsupported action: {action.kind.value}")
            payload = await handler(action)
        except ActionError as exc:
            LOGGER.info("Action %s failed: %s", action.describe(), exc)
            return ActionResult(
                success=False,
                action=action.kind,
                source=self.source,
                url=self.current_url,
                error=exc.code,
                message=str(exc),
                duration_ms=_elapsed_ms(started),
            )
        return ActionResult(
            success=True,
            action=action.kind,
            source=self.source,
            url=payload.get("url") or self.current_url,
            payload=payload,
            duration_ms=_elapsed_ms(started),
        )

    def capped_wait(self, seconds: Optional[float]) -> float:
        requested = DEFAULT_WAIT_SECONDS if seconds is None else max(seconds, 0.0)
        return min(requested, self._config.max_wait_seconds)

    def _handlers(self) -> dict[ActionKind, Callable[[Action], Awaitable[dict[str, Any]]]]:
        return {
            ActionKind.NAVIGATE: self._do_navigate,
            ActionKind.CLICK: self._do_click,
            ActionKind.TYPE: self._do_type,
            ActionKind.SCROLL: self._do_scroll,
            ActionKind.WAIT: self._do_wait,
            ActionKind.SCREENSHOT: self._do_screenshot,
            ActionKind.PAGE_INFO: self._do_page_info,
        }

    async def _do_navigate(self, action: Action) -> dict[str, Any]:
        return await self.navigate(_normalize_url(action.url or ""))

    async def _do_click(self, action: Action) -> dict[str, Any]:
        return await self.click(action.locator or "")

    async def _do_type(self, action: Action) -> dict[str, Any]:
        return await self.type(action.locator or "", action.text or "")

    async def _do_scroll(self, action: Action) -> dict[str, Any]:
        amount = DEFAULT_SCROLL_PIXELS if action.amount is None else action.amount
        return await self.scroll(action.direction, amount)

    async def _do_wait(self, action: Action) -> dict[str, Any]:
        seconds = self.capped_wait(action.seconds)
        payload = await self.wait(seconds)
        payload.setdefault("seconds", seconds)
        payload["capped"] = action.seconds is not None and action.seconds > seconds
        return payload

    async def _do_screenshot(self, action: Action) -> dict[str, Any]:
        frame = await self.screenshot()
        return {
            "data": base64.b64encode(frame.data).decode("ascii"),
            "mime_type": frame.mime_type,
            "url": frame.url,
        }

    async def _do_page_info(self, action: Action) -> dict[str, Any]:
        info = await self.page_info()
        return info.model_dump()


def _normalize_url(url: str) -> str:
    cleaned = url.strip()
    if not cleaned:
        raise ActionFailed("Navigate action requires a URL")
    if "://" not in cleaned and not cleaned.startswith(("about:", "data:", "file:")):
        cleaned = f"https://{cleaned}"
    return cleaned


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)
