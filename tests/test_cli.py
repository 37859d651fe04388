from datetime import datetime, timezone

import httpx
from typer.testing import CliRunner

from browser_control import cli
from browser_control.cli import app
from browser_control.models import ResultSource, SessionInfo, SessionStatus


def test_run_command_executes_instructions_in_simulation():
    runner = CliRunner()

    result = runner.invoke(app, ["run", "--simulated", "go to example.com", "scroll down"])

    assert result.exit_code == 0, result.output
    assert "simulated" in result.output
    assert "navigate https://example.com" in result.output
    assert "scroll down" in result.output


def test_run_command_passes_overrides(monkeypatch, tmp_path):
    runner = CliRunner()
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("browser:\n  simulated_latency: 0\n")
    captured: dict[str, object] = {}
    original = cli.load_config

    def fake_load_config(path, *, env_file=None, **overrides):  # type: ignore[no-untyped-def]
        captured["path"] = path
        captured["overrides"] = overrides
        return original(path, env_file=env_file, **overrides)

    monkeypatch.setattr(cli, "load_config", fake_load_config)

    result = runner.invoke(
        app,
        ["run", "--config", str(config_path), "--simulated", "--provider", "heuristic", "wait 0 seconds"],
    )

    assert result.exit_code == 0, result.output
    assert captured["path"] == config_path
    overrides = captured["overrides"]
    assert overrides["browser"] == {"mode": "simulated"}
    assert overrides["translator"] == {"provider": "heuristic"}
    assert overrides["stream"] == {"enabled": False}


def test_sessions_command_renders_table(monkeypatch):
    async def fake_list_sessions(self):  # type: ignore[no-untyped-def]
        return [
            SessionInfo(
                id="s1",
                owner_id="erin",
                status=SessionStatus.ACTIVE,
                source=ResultSource.SIMULATED,
                current_url="https://example.com",
                updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            )
        ]

    monkeypatch.setattr(cli.ControlClient, "list_sessions", fake_list_sessions)
    runner = CliRunner()

    result = runner.invoke(app, ["sessions", "--url", "http://control:8080"])

    assert result.exit_code == 0, result.output
    assert "s1" in result.output
    assert "erin" in result.output
    assert "active" in result.output


def test_sessions_command_reports_unreachable_server(monkeypatch):
    async def fake_list_sessions(self):  # type: ignore[no-untyped-def]
        raise httpx.ConnectError("connection refused")

    monkeypatch.setattr(cli.ControlClient, "list_sessions", fake_list_sessions)
    runner = CliRunner()

    result = runner.invoke(app, ["sessions"])

    assert result.exit_code == 1
    assert "Failed to reach" in result.output


def test_serve_command_starts_uvicorn(monkeypatch):
    calls: dict[str, object] = {}

    def fake_run(application, host, port):  # type: ignore[no-untyped-def]
        calls["app"] = application
        calls["host"] = host
        calls["port"] = port

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    runner = CliRunner()

    result = runner.invoke(app, ["serve", "--simulated", "--host", "127.0.0.1", "--port", "9999"])

    assert result.exit_code == 0, result.output
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 9999
    assert calls["app"].state.config.browser.mode == "simulated"


def test_version_command():
    result = CliRunner().invoke(app, ["version"])

    assert result.exit_code == 0
    assert result.output.strip()
