"""Periodic screenshot capture for a single session."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..errors import BrowserControlError, TransportError
from ..models import Frame

LOGGER = logging.getLogger(__name__)

CaptureFn = Callable[[], Awaitable[Optional[Frame]]]
FrameCallback = Callable[[Frame], Awaitable[None]]


class ScreenshotStreamer:
    """Capture a frame every ``interval`` seconds and hand it to ``on_frame``.

    Captures never overlap: a tick that comes due while the previous capture
    or push is still running is skipped, not queued. ``capture`` may return
    ``None`` to skip a tick (for example while an action holds the page).
    ``on_frame`` raising :class:`TransportError` ends the stream.
    """

    def __init__(
        self,
        session_id: str,
        capture: CaptureFn,
        on_frame: FrameCallback,
        *,
        interval: float = 1.0,
    ) -> None:
        if interval <= 0:
            raise ValueError("Stream interval must be positive")
        self._session_id = session_id
        self._capture = capture
        self._on_frame = on_frame
        self._interval = interval
        self._task: Optional[asyncio.Task[None]] = None
        self._in_flight = False
        self.frames_sent = 0
        self.ticks_skipped = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def capture_in_flight(self) -> bool:
        return self._in_flight

    def start(self) -> None:
        if self.running:
            return
        LOGGER.debug("Starting screenshot stream for session %s", self._session_id)
        self._task = asyncio.create_task(
            self._run(),
            name=f"screenshot-stream-{self._session_id}",
        )

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        LOGGER.debug("Stopping screenshot stream for session %s", self._session_id)
        if task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        next_tick = time.monotonic() + self._interval
        while self._task is asyncio.current_task():
            await asyncio.sleep(max(0.0, next_tick - time.monotonic()))
            try:
                await self._tick()
            except TransportError as exc:
                LOGGER.info("Stream for session %s ended: %s", self._session_id, exc)
                return
            if self._task is not asyncio.current_task():
                return
            next_tick += self._interval
            now = time.monotonic()
            if next_tick < now:
                missed = int((now - next_tick) // self._interval) + 1
                self.ticks_skipped += missed
                next_tick += missed * self._interval

    async def _tick(self) -> None:
        if self._in_flight:
            self.ticks_skipped += 1
            return
        self._in_flight = True
        try:
            frame = await self._capture()
            if frame is None:
                self.ticks_skipped += 1
                return
            await self._on_frame(frame)
            self.frames_sent += 1
        except TransportError:
            raise
        except BrowserControlError as exc:
            LOGGER.warning("Screenshot capture failed for session %s: %s", self._session_id, exc)
        finally:
            self._in_flight = False
