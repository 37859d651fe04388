"""Configuration models for the browser control engine."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BrowserConfig(BaseModel):
    """Settings for the browser drivers."""

    mode: str = Field(
        default="auto",
        description="'auto' tries a real browser and falls back to simulation; "
        "'simulated' never launches a browser.",
    )
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    user_agent: Optional[str] = None
    start_url: str = "about:blank"
    launch_timeout: float = 30.0
    navigation_timeout: float = 30.0
    element_timeout: float = 10.0
    max_wait_seconds: float = Field(
        default=10.0,
        description="Upper bound applied to every wait action.",
    )
    screenshot_quality: int = 80
    screenshot_timeout: float = 5.0
    simulated_latency: float = Field(
        default=1.0,
        description="Scale factor for the simulated driver's latency (0 disables it).",
    )


class TranslatorConfig(BaseModel):
    """Settings for the instruction translator and its inference provider."""

    provider: str = Field(default="heuristic")
    model: Optional[str] = None
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 15.0
    search_url: str = "https://www.google.com/search?q="
    parameters: dict[str, Any] = Field(default_factory=dict)


class StreamConfig(BaseModel):
    """Screenshot streaming cadence."""

    enabled: bool = True
    interval: float = 1.0


class ServerConfig(BaseModel):
    """Binding and connection behaviour of the control endpoint."""

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    close_sessions_on_disconnect: bool = False


class HistoryConfig(BaseModel):
    """Retention of the in-memory action history."""

    max_actions_per_session: int = 500
    page_size: int = 100


class EngineConfig(BaseSettings):
    """Top-level configuration for the control engine."""

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_CONTROL_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    translator: TranslatorConfig = Field(default_factory=TranslatorConfig)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> EngineConfig:
    """Load configuration from an optional file and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = EngineConfig(**settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return EngineConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
