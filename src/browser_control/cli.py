"""Command line interface for the browser control engine."""

from __future__ import annotations

import asyncio
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, List, Optional, Tuple

import httpx
import typer
import uvicorn
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .client import ControlClient
from .config import EngineConfig, load_config
from .factory import build_session_manager
from .models import Action, ActionResult, InitResult
from .server.app import create_app

app = typer.Typer(help="Browser control engine entry point")
console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging before executing any command."""

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.command()
def version() -> None:
    """Print the package version."""

    try:
        typer.echo(get_version("browser-control-engine"))
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        typer.echo("0.0.0")


@app.command()
def serve(
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    host: Annotated[
        Optional[str],
        typer.Option("--host", help="Binding address for the control server."),
    ] = None,
    port: Annotated[
        Optional[int],
        typer.Option("--port", help="Port for the control server."),
    ] = None,
    simulated: Annotated[
        bool,
        typer.Option("--simulated", help="Never launch a real browser."),
    ] = False,
) -> None:
    """Run the WebSocket and HTTP control server."""

    overrides: dict[str, Any] = {}
    if host is not None or port is not None:
        overrides.setdefault("server", {})
        if host is not None:
            overrides["server"]["host"] = host
        if port is not None:
            overrides["server"]["port"] = port
    if simulated:
        overrides["browser"] = {"mode": "simulated"}

    config = load_config(config_path, env_file=env_file, **overrides)
    typer.echo(f"Serving control endpoint on {config.server.host}:{config.server.port}")
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


@app.command()
def run(
    instructions: Annotated[
        List[str],
        typer.Argument(help="Instructions to execute in order, one per argument."),
    ],
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
    simulated: Annotated[
        bool,
        typer.Option("--simulated", help="Never launch a real browser."),
    ] = False,
    provider: Annotated[
        Optional[str],
        typer.Option("--provider", help="Translator provider to use."),
    ] = None,
    model: Annotated[
        Optional[str],
        typer.Option("--model", help="Translator model identifier."),
    ] = None,
    api_key: Annotated[
        Optional[str],
        typer.Option("--api-key", help="API key for the translator provider."),
    ] = None,
    headless: Annotated[
        Optional[bool],
        typer.Option("--headless/--headed", help="Run the browser in headless mode (or headed)."),
    ] = None,
) -> None:
    """Execute instructions in a one-shot local session and print each result."""

    overrides: dict[str, Any] = {"stream": {"enabled": False}}
    if simulated or headless is not None:
        overrides.setdefault("browser", {})
        if simulated:
            overrides["browser"]["mode"] = "simulated"
        if headless is not None:
            overrides["browser"]["headless"] = headless
    if any([provider, model, api_key]):
        overrides.setdefault("translator", {})
        if provider:
            overrides["translator"]["provider"] = provider
        if model:
            overrides["translator"]["model"] = model
        if api_key:
            overrides["translator"]["api_key"] = api_key

    config = load_config(config_path, env_file=env_file, **overrides)
    init, steps = asyncio.run(_run_instructions(config, instructions))
    source = init.source.value if init.source else "unknown"
    console.print(f"Session started with a [bold]{source}[/bold] browser")

    failures = 0
    for instruction, action, result in steps:
        style = "green" if result.success else "red"
        outcome = "ok" if result.success else f"{result.error}: {result.message}"
        console.print(
            f"{instruction!r} -> {action.describe()} ({outcome})",
            style=style,
            markup=False,
        )
        if result.url:
            console.print(f"  url: {result.url}", style="dim", markup=False)
        if not result.success:
            failures += 1
    if failures:
        raise typer.Exit(code=1)


@app.command()
def sessions(
    url: Annotated[
        str,
        typer.Option("--url", help="Base URL of a running control server."),
    ] = "http://127.0.0.1:8080",
) -> None:
    """List the sessions known to a running control server."""

    client = ControlClient(url)
    try:
        items = asyncio.run(client.list_sessions())
    except httpx.HTTPError as exc:
        console.print(f"Failed to reach {url}: {exc}", style="red")
        raise typer.Exit(code=1) from exc

    table = Table(title="Sessions")
    for column in ("ID", "Owner", "Status", "Source", "URL", "Updated"):
        table.add_column(column)
    for info in items:
        table.add_row(
            info.id,
            info.owner_id,
            info.status.value,
            info.source.value if info.source else "-",
            info.current_url or "-",
            info.updated_at.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


async def _run_instructions(
    config: EngineConfig,
    instructions: List[str],
) -> Tuple[InitResult, List[Tuple[str, Action, ActionResult]]]:
    manager = build_session_manager(config)
    steps: List[Tuple[str, Action, ActionResult]] = []
    try:
        info = await manager.create("cli")
        init = await manager.init(info.id)
        for instruction in instructions:
            action, result = await manager.run_instruction(info.id, instruction)
            steps.append((instruction, action, result))
    finally:
        await manager.shutdown()
    return init, steps


if __name__ == "__main__":
    app()
