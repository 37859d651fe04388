"""Simulated driver used when no real browser can be acquired."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any, Optional
from urllib.parse import urlparse

from ..config import BrowserConfig
from ..errors import DriverUnavailable
from ..models import Frame, PageInfo, ResultSource, ScrollDirection
from .base import BrowserDriver

LOGGER = logging.getLogger(__name__)

# 1x1 grey PNG served as the synthetic viewport image.
PLACEHOLDER_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)

# Seconds of simulated latency per primitive, before scaling.
_LATENCY = {
    "navigate": 0.3,
    "click": 0.05,
    "type": 0.05,
    "scroll": 0.02,
    "screenshot": 0.01,
    "page_info": 0.0,
}


class SimulatedDriver(BrowserDriver):
    """Driver that returns plausible, schema-conformant synthetic results.

    Every call succeeds for any well-formed input, and latency depends only on
    the primitive, so repeated actions yield the same outcome.
    """

    source = ResultSource.SIMULATED

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        super().__init__(config)
        self._started = False
        self._url = self._config.start_url
        self._scroll_y = 0
        self._fields: dict[str, str] = {}
        self._frame_sequence = 0

    async def start(self) -> None:
        LOGGER.info("Using simulated browser driver")
        self._started = True

    async def stop(self) -> None:
        self._started = False

    @property
    def current_url(self) -> Optional[str]:
        return self._url

    async def navigate(self, url: str) -> dict[str, Any]:
        latency = await self._simulate("navigate")
        self._url = url
        self._scroll_y = 0
        self._fields.clear()
        return {"url": url, "load_time_ms": round(latency * 1000, 3)}

    async def click(self, locator: str) -> dict[str, Any]:
        await self._simulate("click")
        return {"locator": locator}

    async def type(self, locator: str, text: str) -> dict[str, Any]:
        await self._simulate("type")
        self._fields[locator] = text
        return {"locator": locator, "length": len(text)}

    async def scroll(self, direction: ScrollDirection, amount: int) -> dict[str, Any]:
        await self._simulate("scroll")
        delta = amount if direction is ScrollDirection.DOWN else -amount
        self._scroll_y = max(0, self._scroll_y + delta)
        return {"direction": direction.value, "amount": amount}

    async def wait(self, seconds: float) -> dict[str, Any]:
        self._require_started()
        await asyncio.sleep(seconds * self._config.simulated_latency)
        return {"seconds": seconds}

    async def screenshot(self) -> Frame:
        await self._simulate("screenshot")
        self._frame_sequence += 1
        return Frame(
            data=PLACEHOLDER_PNG,
            mime_type="image/png",
            url=self._url,
            source=self.source,
            sequence=self._frame_sequence,
        )

    async def page_info(self) -> PageInfo:
        await self._simulate("page_info")
        return PageInfo(
            url=self._url,
            title=_title_for(self._url),
            viewport_width=self._config.viewport_width,
            viewport_height=self._config.viewport_height,
        )

    def field_value(self, locator: str) -> Optional[str]:
        """Return the text last typed into ``locator``."""

        return self._fields.get(locator)

    async def _simulate(self, primitive: str) -> float:
        self._require_started()
        latency = _LATENCY[primitive] * self._config.simulated_latency
        if latency > 0:
            await asyncio.sleep(latency)
        return latency

    def _require_started(self) -> None:
        if not self._started:
            raise DriverUnavailable("Simulated browser is not started")


def _title_for(url: str) -> str:
    host = urlparse(url).hostname
    if not host:
        return "New Tab"
    return host.removeprefix("www.")
