import asyncio
from typing import Any

import pytest

from browser_control.config import BrowserConfig
from browser_control.drivers.simulated import SimulatedDriver
from browser_control.errors import (
    DriverUnavailable,
    DuplicateSession,
    ElementNotFound,
    SessionNotFound,
    SessionNotReady,
    SessionPaused,
)
from browser_control.history import InMemoryHistoryStore
from browser_control.models import (
    Action,
    ActionKind,
    Frame,
    ResultSource,
    SessionStatus,
)
from browser_control.session.manager import SessionManager
from browser_control.translator.mock import ScriptedInferenceClient
from browser_control.translator.service import InstructionTranslator

FAST = BrowserConfig(mode="simulated", simulated_latency=0)


class CountingFactory:
    def __init__(self, driver_cls=SimulatedDriver) -> None:
        self.driver_cls = driver_cls
        self.drivers: list[SimulatedDriver] = []

    def __call__(self) -> SimulatedDriver:
        driver = self.driver_cls(FAST)
        self.drivers.append(driver)
        return driver


class RealishDriver(SimulatedDriver):
    source = ResultSource.REAL


class UnlaunchableDriver(RealishDriver):
    async def start(self) -> None:
        raise DriverUnavailable("no chromium here")


class MissingElementDriver(RealishDriver):
    async def click(self, locator: str) -> dict[str, Any]:
        if locator == "#missing":
            raise ElementNotFound(f"{locator} not visible after 10s")
        return await super().click(locator)


class CrashingDriver(RealishDriver):
    async def click(self, locator: str) -> dict[str, Any]:
        raise DriverUnavailable("Target page, context or browser has been closed")


class SlowNavigateDriver(RealishDriver):
    def __init__(self, config=None) -> None:
        super().__init__(config)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def navigate(self, url: str) -> dict[str, Any]:
        self.entered.set()
        await self.release.wait()
        return await super().navigate(url)


def _manager(**kwargs) -> SessionManager:
    kwargs.setdefault("fallback_factory", CountingFactory())
    kwargs.setdefault("stream_enabled", False)
    return SessionManager(**kwargs)


@pytest.mark.asyncio
async def test_create_init_and_navigate():
    manager = _manager()

    info = await manager.create("owner-1", "s1")
    assert info.status == SessionStatus.UNINITIALIZED

    init = await manager.init("s1")
    assert init.success
    assert init.status == SessionStatus.ACTIVE
    assert init.source == ResultSource.SIMULATED

    result = await manager.dispatch("s1", Action(kind=ActionKind.NAVIGATE, url="https://example.com"))
    assert result.success
    assert result.url == "https://example.com"

    session = manager.get("s1")
    assert session.current_url == "https://example.com"
    assert session.last_action == "navigate"
    assert session.owner_id == "owner-1"


@pytest.mark.asyncio
async def test_init_is_idempotent_and_allocates_one_driver():
    factory = CountingFactory(RealishDriver)
    manager = _manager(driver_factory=factory)

    first = await manager.init("s1", "owner")
    second = await manager.init("s1", "owner")

    assert first.status == second.status == SessionStatus.ACTIVE
    assert not first.reused
    assert second.reused
    assert len(factory.drivers) == 1
    assert first.source == ResultSource.REAL


@pytest.mark.asyncio
async def test_create_rejects_duplicate_ids():
    manager = _manager()
    await manager.create("owner", "s1")

    with pytest.raises(DuplicateSession):
        await manager.create("owner", "s1")


@pytest.mark.asyncio
async def test_create_generates_ids():
    manager = _manager()

    first = await manager.create("owner")
    second = await manager.create("owner")

    assert first.id != second.id


@pytest.mark.asyncio
async def test_dispatch_before_init_is_rejected():
    manager = _manager()
    await manager.create("owner", "s1")

    with pytest.raises(SessionNotReady):
        await manager.dispatch("s1", Action(kind=ActionKind.SCREENSHOT))
    with pytest.raises(SessionNotFound):
        await manager.dispatch("nope", Action(kind=ActionKind.SCREENSHOT))


@pytest.mark.asyncio
async def test_pause_blocks_dispatch_until_resumed():
    manager = _manager()
    await manager.init("s1", "owner")
    action = Action(kind=ActionKind.SCROLL, amount=100)

    paused = await manager.pause("s1")
    assert paused.status == SessionStatus.PAUSED
    with pytest.raises(SessionPaused):
        await manager.dispatch("s1", action)

    resumed = await manager.resume("s1")
    assert resumed.status == SessionStatus.ACTIVE
    result = await manager.dispatch("s1", action)
    assert result.success


@pytest.mark.asyncio
async def test_missing_element_fails_action_but_not_session():
    manager = _manager(driver_factory=CountingFactory(MissingElementDriver))
    await manager.init("s1", "owner")

    result = await manager.dispatch("s1", Action(kind=ActionKind.CLICK, locator="#missing"))

    assert not result.success
    assert result.error == "ElementNotFound"
    assert result.source == ResultSource.REAL
    assert manager.get("s1").status == SessionStatus.ACTIVE
    assert manager.get("s1").last_action is None


@pytest.mark.asyncio
async def test_failed_driver_acquisition_falls_back_to_simulation():
    fallback = CountingFactory()
    manager = _manager(driver_factory=CountingFactory(UnlaunchableDriver), fallback_factory=fallback)

    init = await manager.init("s2", "owner")

    assert init.success
    assert init.status == SessionStatus.ACTIVE
    assert init.source == ResultSource.SIMULATED
    assert len(fallback.drivers) == 1
    for action in [
        Action(kind=ActionKind.NAVIGATE, url="https://example.com"),
        Action(kind=ActionKind.CLICK, locator="#anything"),
        Action(kind=ActionKind.SCREENSHOT),
    ]:
        result = await manager.dispatch("s2", action)
        assert result.success
        assert result.source == ResultSource.SIMULATED


@pytest.mark.asyncio
async def test_driver_loss_moves_session_to_error():
    manager = _manager(driver_factory=CountingFactory(CrashingDriver))
    await manager.init("s1", "owner")

    result = await manager.dispatch("s1", Action(kind=ActionKind.CLICK, locator="#go"))

    assert not result.success
    assert result.error == "DriverUnavailable"
    info = manager.get("s1")
    assert info.status == SessionStatus.ERROR
    assert info.error
    with pytest.raises(SessionNotReady):
        await manager.dispatch("s1", Action(kind=ActionKind.SCREENSHOT))


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_releases_driver():
    factory = CountingFactory()
    manager = _manager(fallback_factory=factory)
    await manager.init("s1", "owner")

    first = await manager.stop("s1")
    second = await manager.stop("s1")
    closed = await manager.close("s1")

    assert first.status == second.status == closed.status == SessionStatus.STOPPED
    assert factory.drivers[0]._started is False
    with pytest.raises(SessionNotReady):
        await manager.dispatch("s1", Action(kind=ActionKind.SCREENSHOT))
    with pytest.raises(DuplicateSession):
        await manager.init("s1", "owner")


@pytest.mark.asyncio
async def test_close_uninitialised_session():
    manager = _manager()
    await manager.create("owner", "s1")

    info = await manager.close("s1")

    assert info.status == SessionStatus.CLOSED


@pytest.mark.asyncio
async def test_stop_during_dispatch_discards_metadata_update():
    factory = CountingFactory(SlowNavigateDriver)
    manager = _manager(driver_factory=factory)
    await manager.init("s1", "owner")
    driver = factory.drivers[0]

    task = asyncio.create_task(
        manager.dispatch("s1", Action(kind=ActionKind.NAVIGATE, url="https://late.example"))
    )
    await driver.entered.wait()
    stopped = await manager.stop("s1")
    driver.release.set()
    await task

    assert stopped.status == SessionStatus.STOPPED
    assert manager.get("s1").current_url != "https://late.example"


@pytest.mark.asyncio
async def test_sessions_do_not_block_each_other():
    factory = CountingFactory(SlowNavigateDriver)
    manager = _manager(driver_factory=factory)
    await manager.init("slow", "owner")
    await manager.init("fast", "owner")
    slow_driver = factory.drivers[0]

    task = asyncio.create_task(
        manager.dispatch("slow", Action(kind=ActionKind.NAVIGATE, url="https://slow.example"))
    )
    await slow_driver.entered.wait()
    result = await asyncio.wait_for(
        manager.dispatch("fast", Action(kind=ActionKind.SCROLL)),
        timeout=1,
    )
    slow_driver.release.set()
    await task

    assert result.success


@pytest.mark.asyncio
async def test_dispatch_records_history():
    history = InMemoryHistoryStore()
    manager = _manager(history=history)
    await manager.init("s1", "owner")
    await manager.dispatch("s1", Action(kind=ActionKind.NAVIGATE, url="https://a.example"))
    await manager.dispatch("s1", Action(kind=ActionKind.NAVIGATE, url="https://b.example"))

    records = history.list_actions("s1", limit=10)

    assert [record.action.url for record in records] == ["https://b.example", "https://a.example"]
    assert all(record.owner_id == "owner" for record in records)


@pytest.mark.asyncio
async def test_run_instruction_translates_with_page_context():
    client = ScriptedInferenceClient(['{"kind": "click", "locator": "#next"}'])
    manager = _manager(translator=InstructionTranslator(client))
    await manager.init("s1", "owner")
    await manager.dispatch("s1", Action(kind=ActionKind.NAVIGATE, url="https://example.com"))

    action, result = await manager.run_instruction("s1", "go to the next page")

    assert action.locator == "#next"
    assert action.instruction == "go to the next page"
    assert result.success
    assert client.requests[0].page.url == "https://example.com"


@pytest.mark.asyncio
async def test_run_instruction_uses_fallback_without_inference():
    manager = _manager()
    await manager.init("s1", "owner")

    action, result = await manager.run_instruction("s1", "visit github")

    assert action.url == "https://github.com"
    assert result.success
    assert manager.get("s1").current_url == "https://github.com"


@pytest.mark.asyncio
async def test_capture_returns_frame():
    manager = _manager()
    await manager.init("s1", "owner")

    frame = await manager.capture("s1")

    assert frame.source == ResultSource.SIMULATED
    assert manager.latest_frame("s1") == frame


@pytest.mark.asyncio
async def test_stream_feeds_attached_sinks():
    manager = _manager(stream_enabled=True, stream_interval=0.01)
    await manager.init("s1", "owner")
    frames: list[Frame] = []

    async def sink(frame: Frame) -> None:
        frames.append(frame)

    manager.attach_sink("s1", sink)
    await asyncio.sleep(0.08)
    await manager.pause("s1")
    paused_count = len(frames)
    await asyncio.sleep(0.05)

    assert paused_count >= 1
    assert len(frames) == paused_count
    assert not manager.is_streaming("s1")

    await manager.resume("s1")
    assert manager.is_streaming("s1")
    await manager.detach_sink("s1", sink)
    assert not manager.is_streaming("s1")
    await manager.shutdown()


@pytest.mark.asyncio
async def test_shutdown_closes_live_sessions():
    manager = _manager()
    await manager.init("a", "owner")
    await manager.create("owner", "b")
    await manager.init("c", "owner")
    await manager.stop("c")

    await manager.shutdown()

    statuses = {info.id: info.status for info in manager.list_sessions()}
    assert statuses == {
        "a": SessionStatus.CLOSED,
        "b": SessionStatus.CLOSED,
        "c": SessionStatus.STOPPED,
    }
    assert manager.active_count == 0
