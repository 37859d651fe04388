"""Playwright-powered browser driver."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

from playwright.async_api import Error, TimeoutError as PlaywrightTimeoutError, async_playwright

from ..config import BrowserConfig
from ..errors import ActionFailed, DriverUnavailable, ElementNotFound, NavigationTimeout
from ..models import Frame, PageInfo, ResultSource, ScrollDirection
from .base import BrowserDriver

LOGGER = logging.getLogger(__name__)

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


class PlaywrightDriver(BrowserDriver):
    """Driver controlling a Chromium instance through Playwright."""

    source = ResultSource.REAL

    def __init__(self, config: Optional[BrowserConfig] = None) -> None:
        super().__init__(config)
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None
        self._frame_sequence = 0

    async def start(self) -> None:
        LOGGER.debug("Starting Playwright browser")
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self._config.headless,
                args=_LAUNCH_ARGS,
                timeout=_to_timeout(self._config.launch_timeout),
            )
            context_kwargs: dict[str, Any] = {
                "viewport": {
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
            }
            if self._config.user_agent:
                context_kwargs["user_agent"] = self._config.user_agent
            self._context = await self._browser.new_context(**context_kwargs)
            self._page = await self._context.new_page()
            if self._config.start_url and self._config.start_url != "about:blank":
                await self._page.goto(
                    self._config.start_url,
                    timeout=_to_timeout(self._config.navigation_timeout),
                )
        except Error as exc:
            await self.stop()
            raise DriverUnavailable(f"Unable to launch browser: {exc}") from exc

    async def stop(self) -> None:
        LOGGER.debug("Stopping Playwright browser")
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        except Error as exc:
            LOGGER.warning("Error while closing browser: %s", exc)
        finally:
            if self._playwright:
                await self._playwright.stop()
            self._context = None
            self._browser = None
            self._playwright = None
            self._page = None

    @property
    def current_url(self) -> Optional[str]:
        if not self._page:
            return None
        return self._page.url

    async def navigate(self, url: str) -> dict[str, Any]:
        page = self._require_page()
        started = time.perf_counter()
        try:
            await page.goto(
                url,
                wait_until="networkidle",
                timeout=_to_timeout(self._config.navigation_timeout),
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTimeout(
                f"Navigation to {url} exceeded {self._config.navigation_timeout}s"
            ) from exc
        except Error as exc:
            raise self._translate_error(exc) from exc
        return {
            "url": page.url,
            "load_time_ms": round((time.perf_counter() - started) * 1000, 3),
        }

    async def click(self, locator: str) -> dict[str, Any]:
        target = await self._resolve(locator)
        try:
            await target.click(timeout=_to_timeout(self._config.element_timeout))
        except Error as exc:
            raise self._translate_error(exc) from exc
        return {"locator": locator}

    async def type(self, locator: str, text: str) -> dict[str, Any]:
        page = self._require_page()
        target = await self._resolve(locator)
        try:
            await target.click(timeout=_to_timeout(self._config.element_timeout))
            await page.keyboard.press("ControlOrMeta+A")
            if text:
                await page.keyboard.insert_text(text)
            else:
                await page.keyboard.press("Backspace")
        except Error as exc:
            raise self._translate_error(exc) from exc
        return {"locator": locator, "length": len(text)}

    async def scroll(self, direction: ScrollDirection, amount: int) -> dict[str, Any]:
        page = self._require_page()
        delta = amount if direction is ScrollDirection.DOWN else -amount
        try:
            await page.mouse.wheel(0, delta)
        except Error as exc:
            raise self._translate_error(exc) from exc
        return {"direction": direction.value, "amount": amount}

    async def wait(self, seconds: float) -> dict[str, Any]:
        page = self._require_page()
        try:
            await page.wait_for_timeout(seconds * 1000)
        except Error as exc:
            raise self._translate_error(exc) from exc
        return {"seconds": seconds}

    async def screenshot(self) -> Frame:
        page = self._require_page()
        try:
            data = await page.screenshot(
                type="jpeg",
                quality=self._config.screenshot_quality,
                full_page=False,
                timeout=_to_timeout(self._config.screenshot_timeout),
            )
        except Error as exc:
            raise self._translate_error(exc) from exc
        self._frame_sequence += 1
        return Frame(
            data=data,
            mime_type="image/jpeg",
            url=page.url,
            source=self.source,
            sequence=self._frame_sequence,
        )

    async def page_info(self) -> PageInfo:
        page = self._require_page()
        try:
            title = await page.title()
        except Error as exc:
            raise self._translate_error(exc) from exc
        viewport = page.viewport_size or {}
        return PageInfo(
            url=page.url,
            title=title,
            viewport_width=viewport.get("width", self._config.viewport_width),
            viewport_height=viewport.get("height", self._config.viewport_height),
        )

    # Internal helpers -------------------------------------------------

    def _require_page(self):
        if not self._page or self._page.is_closed():
            raise DriverUnavailable("Browser page is not available")
        return self._page

    async def _resolve(self, locator: str):
        page = self._require_page()
        target = page.locator(locator).first
        try:
            await target.wait_for(
                state="visible",
                timeout=_to_timeout(self._config.element_timeout),
            )
        except PlaywrightTimeoutError as exc:
            raise ElementNotFound(
                f"No element matched {locator!r} within {self._config.element_timeout}s"
            ) from exc
        except Error as exc:
            raise self._translate_error(exc) from exc
        return target

    def _translate_error(self, exc: Error) -> Exception:
        if isinstance(exc, PlaywrightTimeoutError):
            return ActionFailed(str(exc))
        message = str(exc)
        if (self._page is not None and self._page.is_closed()) or "has been closed" in message:
            return DriverUnavailable(message)
        return ActionFailed(message)


def _to_timeout(seconds: float) -> float:
    return seconds * 1000
