from pathlib import Path

from browser_control.config import EngineConfig, load_config


def test_defaults_match_engine_constants() -> None:
    config = EngineConfig()

    assert config.browser.mode == "auto"
    assert (config.browser.viewport_width, config.browser.viewport_height) == (1280, 720)
    assert config.browser.navigation_timeout == 30.0
    assert config.browser.element_timeout == 10.0
    assert config.browser.screenshot_quality == 80
    assert config.stream.interval == 1.0
    assert config.history.page_size == 100
    assert config.translator.provider == "heuristic"


def test_load_config_reads_env_file(tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "BROWSER_CONTROL_BROWSER__MODE=simulated",
                "BROWSER_CONTROL_TRANSLATOR__PROVIDER=openrouter",
                "BROWSER_CONTROL_TRANSLATOR__MODEL=some/model",
                "BROWSER_CONTROL_STREAM__INTERVAL=0.5",
            ]
        )
    )

    config = load_config(env_file=env_path)

    assert config.browser.mode == "simulated"
    assert config.translator.provider == "openrouter"
    assert config.translator.model == "some/model"
    assert config.stream.interval == 0.5


def test_load_config_prioritises_overrides(tmp_path: Path) -> None:
    env_path = tmp_path / ".env"
    env_path.write_text(
        "\n".join(
            [
                "BROWSER_CONTROL_SERVER__PORT=9001",
                "BROWSER_CONTROL_BROWSER__HEADLESS=false",
            ]
        )
    )

    config_path = tmp_path / "engine.yaml"
    config_path.write_text(
        "\n".join(
            [
                "server:",
                "  port: 9100",
                "browser:",
                "  max_wait_seconds: 3",
            ]
        )
    )

    config = load_config(config_path, env_file=env_path, browser={"max_wait_seconds": 5})

    assert config.server.port == 9100
    assert config.browser.headless is False
    assert config.browser.max_wait_seconds == 5
