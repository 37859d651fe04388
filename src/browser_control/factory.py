"""Factories for constructing components from configuration."""

from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from .config import BrowserConfig, EngineConfig, HistoryConfig, TranslatorConfig
from .drivers.playwright_driver import PlaywrightDriver
from .drivers.simulated import SimulatedDriver
from .history import HistoryStore, InMemoryHistoryStore
from .session.manager import DriverFactory, SessionManager
from .translator.base import InferenceClient
from .translator.mock import ScriptedInferenceClient
from .translator.openai_client import OpenAIChatClient
from .translator.service import InstructionTranslator

LOGGER = logging.getLogger(__name__)


def build_inference_client(config: TranslatorConfig) -> Optional[InferenceClient]:
    provider = config.provider.lower()
    if provider in {"heuristic", "none", ""}:
        return None
    if provider in {"openai", "openrouter", "openai-compatible"}:
        if not config.api_key and not config.base_url:
            LOGGER.warning(
                "No API key configured for translator provider %s; using heuristic parser only",
                config.provider,
            )
            return None
        return OpenAIChatClient(config)
    if provider == "mock":
        return ScriptedInferenceClient(str(item) for item in config.parameters.get("responses", []))
    raise ValueError(f"Unsupported translator provider: {config.provider}")


def build_translator(config: TranslatorConfig) -> InstructionTranslator:
    return InstructionTranslator(
        build_inference_client(config),
        timeout=config.timeout,
        search_url=config.search_url,
    )


def build_driver_factory(config: BrowserConfig) -> Optional[DriverFactory]:
    mode = config.mode.lower()
    if mode == "simulated":
        return None
    if mode in {"auto", "real"}:
        return partial(PlaywrightDriver, config)
    raise ValueError(f"Unsupported browser mode: {config.mode}")


def build_history(config: HistoryConfig) -> HistoryStore:
    return InMemoryHistoryStore(max_actions_per_session=config.max_actions_per_session)


def build_session_manager(config: EngineConfig) -> SessionManager:
    return SessionManager(
        driver_factory=build_driver_factory(config.browser),
        fallback_factory=partial(SimulatedDriver, config.browser),
        translator=build_translator(config.translator),
        history=build_history(config.history),
        stream_interval=config.stream.interval,
        stream_enabled=config.stream.enabled,
        launch_timeout=config.browser.launch_timeout,
    )
