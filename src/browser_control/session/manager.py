"""Session manager owning every browser session and its driver."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from ..drivers.base import BrowserDriver
from ..drivers.simulated import SimulatedDriver
from ..errors import (
    BrowserControlError,
    DriverUnavailable,
    DuplicateSession,
    SessionNotFound,
    SessionNotReady,
    SessionPaused,
    TransportError,
)
from ..history import HistoryStore, InMemoryHistoryStore
from ..models import (
    Action,
    ActionRecord,
    ActionResult,
    Frame,
    InitResult,
    PageInfo,
    SessionInfo,
    SessionStatus,
)
from ..translator.service import InstructionTranslator
from .streamer import ScreenshotStreamer

LOGGER = logging.getLogger(__name__)

DEFAULT_OWNER = "anonymous"

DriverFactory = Callable[[], BrowserDriver]
FrameSink = Callable[[Frame], Awaitable[None]]

_TRANSITIONS: Dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.UNINITIALIZED: {
        SessionStatus.ACTIVE,
        SessionStatus.STOPPED,
        SessionStatus.CLOSED,
    },
    SessionStatus.ACTIVE: {
        SessionStatus.PAUSED,
        SessionStatus.STOPPED,
        SessionStatus.CLOSED,
        SessionStatus.ERROR,
    },
    SessionStatus.PAUSED: {
        SessionStatus.ACTIVE,
        SessionStatus.STOPPED,
        SessionStatus.CLOSED,
        SessionStatus.ERROR,
    },
    SessionStatus.STOPPED: set(),
    SessionStatus.CLOSED: set(),
    SessionStatus.ERROR: set(),
}


@dataclass
class _SessionSlot:
    """Everything the manager keeps for one session id."""

    info: SessionInfo
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    driver: Optional[BrowserDriver] = None
    streamer: Optional[ScreenshotStreamer] = None
    sinks: List[FrameSink] = field(default_factory=list)
    latest_frame: Optional[Frame] = None


class SessionManager:
    """Own the session table and serialise driver access per session.

    Each session has its own lock; actions, page-info reads and stream
    captures on one session never run concurrently, while different sessions
    never wait on each other. ``stop`` and ``close`` do not take the session
    lock, so teardown never waits on a slow action.
    """

    def __init__(
        self,
        *,
        driver_factory: Optional[DriverFactory] = None,
        fallback_factory: Optional[DriverFactory] = None,
        translator: Optional[InstructionTranslator] = None,
        history: Optional[HistoryStore] = None,
        stream_interval: float = 1.0,
        stream_enabled: bool = True,
        launch_timeout: float = 30.0,
    ) -> None:
        self._driver_factory = driver_factory
        self._fallback_factory = fallback_factory or SimulatedDriver
        self._translator = translator or InstructionTranslator()
        self._history = history or InMemoryHistoryStore()
        self._stream_interval = stream_interval
        self._stream_enabled = stream_enabled
        self._launch_timeout = launch_timeout
        self._sessions: Dict[str, _SessionSlot] = {}
        self._lock = asyncio.Lock()

    # Queries -----------------------------------------------------------------

    @property
    def history(self) -> HistoryStore:
        return self._history

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def active_count(self) -> int:
        return sum(
            1
            for slot in self._sessions.values()
            if slot.info.status in {SessionStatus.ACTIVE, SessionStatus.PAUSED}
        )

    def get(self, session_id: str) -> SessionInfo:
        return self._slot(session_id).info.model_copy()

    def list_sessions(self) -> List[SessionInfo]:
        infos = [slot.info.model_copy() for slot in self._sessions.values()]
        return sorted(infos, key=lambda info: info.updated_at, reverse=True)

    def latest_frame(self, session_id: str) -> Optional[Frame]:
        return self._slot(session_id).latest_frame

    def is_streaming(self, session_id: str) -> bool:
        streamer = self._slot(session_id).streamer
        return streamer is not None and streamer.running

    # Lifecycle ---------------------------------------------------------------

    async def create(self, owner_id: str, session_id: Optional[str] = None) -> SessionInfo:
        async with self._lock:
            session_id = session_id or uuid.uuid4().hex
            if session_id in self._sessions:
                raise DuplicateSession(session_id, f"Session {session_id!r} already exists")
            slot = self._register(session_id, owner_id)
        return slot.info.model_copy()

    async def init(self, session_id: str, owner_id: Optional[str] = None) -> InitResult:
        async with self._lock:
            slot = self._sessions.get(session_id)
            if slot is None:
                slot = self._register(session_id, owner_id or DEFAULT_OWNER)
        async with slot.lock:
            status = slot.info.status
            if status in {SessionStatus.ACTIVE, SessionStatus.PAUSED}:
                return InitResult(
                    session_id=session_id,
                    status=status,
                    source=slot.info.source,
                    reused=True,
                )
            if status.is_terminal:
                raise DuplicateSession(
                    session_id,
                    f"Session {session_id!r} has ended ({status.value}); use a new session id",
                )
            driver = await self._acquire_driver(session_id)
            if slot.info.status is not SessionStatus.UNINITIALIZED:
                await self._release(driver)
                raise SessionNotReady(
                    session_id,
                    f"Session {session_id!r} was torn down during initialisation",
                )
            slot.driver = driver
            self._transition(
                slot,
                SessionStatus.ACTIVE,
                source=driver.source,
                current_url=driver.current_url,
            )
            self._start_stream(slot)
        return InitResult(session_id=session_id, status=SessionStatus.ACTIVE, source=driver.source)

    async def pause(self, session_id: str) -> SessionInfo:
        slot = self._slot(session_id)
        status = slot.info.status
        if status is SessionStatus.PAUSED:
            return slot.info.model_copy()
        if status is not SessionStatus.ACTIVE:
            raise SessionNotReady(session_id, f"Cannot pause a session that is {status.value}")
        self._transition(slot, SessionStatus.PAUSED)
        await self._stop_stream(slot)
        return slot.info.model_copy()

    async def resume(self, session_id: str) -> SessionInfo:
        slot = self._slot(session_id)
        status = slot.info.status
        if status is SessionStatus.ACTIVE:
            return slot.info.model_copy()
        if status is not SessionStatus.PAUSED:
            raise SessionNotReady(session_id, f"Cannot resume a session that is {status.value}")
        self._transition(slot, SessionStatus.ACTIVE)
        self._start_stream(slot)
        return slot.info.model_copy()

    async def stop(self, session_id: str) -> SessionInfo:
        return await self._teardown(session_id, SessionStatus.STOPPED)

    async def close(self, session_id: str) -> SessionInfo:
        return await self._teardown(session_id, SessionStatus.CLOSED)

    async def shutdown(self) -> None:
        """Close every live session and release shared resources."""

        for session_id, slot in list(self._sessions.items()):
            if not slot.info.status.is_terminal:
                await self.close(session_id)
        await self._translator.aclose()

    # Actions -----------------------------------------------------------------

    async def dispatch(self, session_id: str, action: Action) -> ActionResult:
        slot = self._slot(session_id)
        self._ensure_dispatchable(slot)
        async with slot.lock:
            self._ensure_dispatchable(slot)
            driver = slot.driver
            assert driver is not None
            try:
                result = await driver.execute(action)
            except DriverUnavailable as exc:
                result = ActionResult(
                    success=False,
                    action=action.kind,
                    source=driver.source,
                    url=slot.info.current_url,
                    error=exc.code,
                    message=str(exc),
                )
                await self._fail(slot, driver, exc)
        if slot.driver is not driver:
            LOGGER.info(
                "Session %s was torn down while %s ran; discarding its result",
                session_id,
                action.describe(),
            )
        elif result.success:
            self._touch(slot, current_url=result.url, last_action=action.kind.value)
        self._record_action(slot, action, result)
        return result

    async def run_instruction(
        self,
        session_id: str,
        instruction: str,
    ) -> Tuple[Action, ActionResult]:
        """Translate free text using the current page as context, then dispatch it."""

        slot = self._slot(session_id)
        self._ensure_dispatchable(slot)
        page = await self._page_context(slot)
        action = await self._translator.translate(instruction, page)
        result = await self.dispatch(session_id, action)
        return action, result

    async def capture(self, session_id: str) -> Frame:
        """Take a screenshot immediately, outside of the stream cadence."""

        slot = self._slot(session_id)
        async with slot.lock:
            driver = slot.driver
            if driver is None or slot.info.status not in {
                SessionStatus.ACTIVE,
                SessionStatus.PAUSED,
            }:
                raise SessionNotReady(session_id, "Session has no browser attached")
            try:
                frame = await driver.screenshot()
            except DriverUnavailable as exc:
                await self._fail(slot, driver, exc)
                raise
        slot.latest_frame = frame
        return frame

    # Frame sinks -------------------------------------------------------------

    def attach_sink(self, session_id: str, sink: FrameSink) -> None:
        slot = self._slot(session_id)
        if sink not in slot.sinks:
            slot.sinks.append(sink)
        if slot.info.status is SessionStatus.ACTIVE:
            self._start_stream(slot)

    async def detach_sink(self, session_id: str, sink: FrameSink) -> None:
        slot = self._sessions.get(session_id)
        if slot is None or sink not in slot.sinks:
            return
        slot.sinks.remove(sink)
        if not slot.sinks:
            await self._stop_stream(slot)

    # Internal helpers --------------------------------------------------------

    def _slot(self, session_id: str) -> _SessionSlot:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFound(session_id, f"Session {session_id!r} not found") from None

    def _register(self, session_id: str, owner_id: str) -> _SessionSlot:
        slot = _SessionSlot(info=SessionInfo(id=session_id, owner_id=owner_id))
        self._sessions[session_id] = slot
        self._record_session(slot.info)
        LOGGER.info("Created session %s for owner %s", session_id, owner_id)
        return slot

    def _ensure_dispatchable(self, slot: _SessionSlot) -> None:
        status = slot.info.status
        if status is SessionStatus.PAUSED:
            raise SessionPaused(slot.info.id, f"Session {slot.info.id!r} is paused")
        if status is not SessionStatus.ACTIVE or slot.driver is None:
            raise SessionNotReady(
                slot.info.id,
                f"Session {slot.info.id!r} is {status.value}; initialise it first",
            )

    async def _acquire_driver(self, session_id: str) -> BrowserDriver:
        if self._driver_factory is not None:
            driver: Optional[BrowserDriver] = None
            try:
                driver = self._driver_factory()
                await asyncio.wait_for(driver.start(), timeout=self._launch_timeout)
                LOGGER.info("Real browser attached to session %s", session_id)
                return driver
            except Exception as exc:  # noqa: BLE001 - any launch failure selects the simulator
                LOGGER.warning(
                    "Real browser unavailable for session %s (%s); using simulated driver",
                    session_id,
                    exc or type(exc).__name__,
                )
                if driver is not None:
                    await self._release(driver)
        fallback = self._fallback_factory()
        await fallback.start()
        return fallback

    async def _release(self, driver: BrowserDriver) -> None:
        try:
            await driver.stop()
        except Exception:  # noqa: BLE001 - a failing browser must not block teardown
            LOGGER.exception("Failed to stop %s driver", driver.source.value)

    async def _teardown(self, session_id: str, target: SessionStatus) -> SessionInfo:
        slot = self._slot(session_id)
        if slot.info.status.is_terminal:
            return slot.info.model_copy()
        driver, slot.driver = slot.driver, None
        slot.sinks.clear()
        slot.latest_frame = None
        self._transition(slot, target)
        await self._stop_stream(slot)
        if driver is not None:
            await self._release(driver)
        return slot.info.model_copy()

    async def _fail(
        self,
        slot: _SessionSlot,
        driver: BrowserDriver,
        exc: BrowserControlError,
    ) -> None:
        if slot.driver is not driver:
            return
        LOGGER.error("Driver for session %s failed: %s", slot.info.id, exc)
        slot.driver = None
        self._transition(slot, SessionStatus.ERROR, error=str(exc))
        await self._stop_stream(slot)
        await self._release(driver)

    async def _page_context(self, slot: _SessionSlot) -> Optional[PageInfo]:
        async with slot.lock:
            driver = slot.driver
            if driver is None:
                return None
            try:
                return await driver.page_info()
            except BrowserControlError as exc:
                LOGGER.debug("Page info unavailable for session %s: %s", slot.info.id, exc)
                return None

    # Streaming ---------------------------------------------------------------

    def _start_stream(self, slot: _SessionSlot) -> None:
        if not self._stream_enabled:
            return
        if slot.streamer is None:
            slot.streamer = ScreenshotStreamer(
                slot.info.id,
                capture=lambda: self._capture_for_stream(slot),
                on_frame=lambda frame: self._publish(slot, frame),
                interval=self._stream_interval,
            )
        slot.streamer.start()

    async def _stop_stream(self, slot: _SessionSlot) -> None:
        if slot.streamer is not None:
            await slot.streamer.stop()

    async def _capture_for_stream(self, slot: _SessionSlot) -> Optional[Frame]:
        # Frames are only taken between actions.
        if slot.info.status is not SessionStatus.ACTIVE or slot.lock.locked():
            return None
        async with slot.lock:
            driver = slot.driver
            if driver is None or slot.info.status is not SessionStatus.ACTIVE:
                return None
            try:
                return await driver.screenshot()
            except DriverUnavailable as exc:
                await self._fail(slot, driver, exc)
                return None

    async def _publish(self, slot: _SessionSlot, frame: Frame) -> None:
        slot.latest_frame = frame
        if not slot.sinks:
            return
        failed: List[FrameSink] = []
        for sink in list(slot.sinks):
            try:
                await sink(frame)
            except Exception as exc:  # noqa: BLE001 - a broken client is detached
                LOGGER.info("Detaching frame sink of session %s: %s", slot.info.id, exc)
                failed.append(sink)
        for sink in failed:
            if sink in slot.sinks:
                slot.sinks.remove(sink)
        if failed and not slot.sinks:
            raise TransportError(f"All frame sinks of session {slot.info.id!r} disconnected")

    # Bookkeeping -------------------------------------------------------------

    def _transition(self, slot: _SessionSlot, status: SessionStatus, **changes: object) -> None:
        current = slot.info.status
        if status is not current and status not in _TRANSITIONS[current]:
            raise SessionNotReady(
                slot.info.id,
                f"Session {slot.info.id!r} cannot move from {current.value} to {status.value}",
            )
        LOGGER.info("Session %s: %s -> %s", slot.info.id, current.value, status.value)
        self._touch(slot, status=status, **changes)

    def _touch(self, slot: _SessionSlot, **changes: object) -> None:
        slot.info = slot.info.model_copy(
            update={**changes, "updated_at": datetime.now(timezone.utc)},
        )
        self._record_session(slot.info)

    def _record_session(self, info: SessionInfo) -> None:
        try:
            self._history.record_session(info)
        except Exception:  # noqa: BLE001 - history is best effort
            LOGGER.exception("Failed to record session %s", info.id)

    def _record_action(self, slot: _SessionSlot, action: Action, result: ActionResult) -> None:
        record = ActionRecord(
            session_id=slot.info.id,
            owner_id=slot.info.owner_id,
            action=action,
            result=result,
        )
        try:
            self._history.record_action(record)
        except Exception:  # noqa: BLE001 - history is best effort
            LOGGER.exception("Failed to record action for session %s", slot.info.id)
