"""Typer CLI for the botwatch operator console."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Annotated, Optional, TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from botwatch.config import BotwatchConfig
from botwatch.core.service import ConsoleService
from botwatch.models.enums import BotStatus, CheckStatus
from botwatch.models.runtime import ConnectionState, Snapshot

T = TypeVar("T")

app = typer.Typer(
    name="botwatch",
    help="Watch and steer a remote automation bot from the terminal.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Show or edit saved console settings.", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console(stderr=True)

_STATUS_STYLE = {
    BotStatus.RUNNING: "green",
    BotStatus.PAUSED: "yellow",
    BotStatus.STOPPED: "red",
    BotStatus.IDLE: "dim",
}
_CHECK_STYLE = {
    CheckStatus.PASS: "green",
    CheckStatus.FAIL: "red",
    CheckStatus.WARNING: "yellow",
}


def _config() -> BotwatchConfig:
    return BotwatchConfig.load()


def _service() -> ConsoleService:
    return ConsoleService(_config())


def _run(operation: Callable[[ConsoleService], Awaitable[T]]) -> T:
    """Run one façade operation on a fresh service and shut it down afterwards."""

    async def runner() -> T:
        service = _service()
        try:
            return await operation(service)
        finally:
            await service.shutdown()

    return asyncio.run(runner())


def _print_connection(state: ConnectionState) -> None:
    mode_style = "green" if state.mode.value == "remote" else "yellow"
    console.print(f"[bold]Mode:[/bold] [{mode_style}]{state.mode.value}[/{mode_style}]")
    api = "[green]reachable[/green]" if state.api_reachable else "[red]unreachable[/red]"
    latency = f" ({state.api_latency_ms} ms)" if state.api_latency_ms is not None else ""
    console.print(f"  API: {state.api_endpoint or '—'} {api}{latency}")
    stream = "[green]connected[/green]" if state.stream_connected else "[dim]disconnected[/dim]"
    console.print(f"  Stream: {state.stream_endpoint or '—'} {stream}")
    if state.last_check:
        console.print(f"  Last check: {state.last_check.isoformat()}")
    if state.last_error:
        console.print(f"  [red]Last error:[/red] {escape(state.last_error)}")


def _print_snapshot(snap: Snapshot) -> None:
    style = _STATUS_STYLE.get(snap.status, "")
    console.print(f"\n[bold]Bot[/bold] — [{style}]{snap.status.value}[/{style}]")
    console.print(f"  Queue: {snap.queue_depth}  Jobs: {snap.jobs_processed}")
    console.print(f"  Success: {snap.success_rate:.1f}%  Workers: {snap.active_workers}")
    console.print(f"  Heartbeat: {snap.last_heartbeat}")


@app.command()
def status() -> None:
    """Show the last known connection status (no network calls)."""
    service = _service()
    _print_connection(service.get_connection_status())


@app.command()
def test() -> None:
    """Probe the bot API now."""
    state = _run(lambda s: s.test_connection())
    _print_connection(state)
    if not state.api_reachable:
        raise typer.Exit(1)


@app.command()
def snapshot() -> None:
    """Fetch the bot snapshot (local fallback when unreachable)."""
    snap = _run(lambda s: s.get_snapshot())
    _print_snapshot(snap)


@app.command()
def action(
    name: Annotated[str, typer.Argument(help="start, pause, resume, stop or sync")],
) -> None:
    """Send an operator action to the bot."""
    result = _run(lambda s: s.perform_bot_action(name))
    console.print(f"[green]{escape(result.message)}[/green]")
    _print_snapshot(result.snapshot)


@app.command()
def logs(
    limit: Annotated[int, typer.Option("--limit", "-n", help="Max lines")] = 50,
    follow: Annotated[bool, typer.Option("--follow", "-f", help="Watch the local log file")] = False,
) -> None:
    """Show merged local and remote log lines."""
    lines = _run(lambda s: s.get_logs())
    if not lines:
        console.print("[dim]No log entries found.[/dim]")
    for line in lines[-limit:] if limit > 0 else []:
        _print_log_line(line)

    if follow:
        _follow_local_log(_config())


def _print_log_line(line: str) -> None:
    style = "red" if "] [ERROR]" in line else "yellow" if "] [WARN]" in line else None
    console.print(line, style=style, markup=False, highlight=False)


def _follow_local_log(config: BotwatchConfig) -> None:
    try:
        from watchfiles import watch
    except ImportError:
        console.print(
            "[red]watchfiles is required for follow mode. "
            "Install with: pip install botwatch\\[watch][/red]"
        )
        raise typer.Exit(1)

    path = config.log_path
    position = path.stat().st_size if path.is_file() else 0
    console.print(f"[dim]Watching {path}... (Ctrl+C to stop)[/dim]")
    try:
        for _changes in watch(path):
            try:
                size = path.stat().st_size
            except OSError:
                continue
            if size < position:
                position = 0  # truncated or rotated
            if size == position:
                continue
            with open(path, "r", encoding="utf-8", errors="replace") as f:
                f.seek(position)
                new_lines = f.readlines()
            position = size
            for line in new_lines:
                if line.strip():
                    _print_log_line(line.rstrip("\n"))
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command()
def check(
    bot_path: Annotated[
        Optional[str], typer.Option("--bot-path", help="Bot project folder (default: saved)")
    ] = None,
) -> None:
    """Run setup checks for the local machine and the bot connection."""
    results = _run(lambda s: s.run_setup_checks(bot_path))

    from rich.table import Table

    table = Table(title="Setup Checks")
    table.add_column("Check", style="bold")
    table.add_column("Status")
    table.add_column("Detail")
    for r in results:
        style = _CHECK_STYLE[r.status]
        table.add_row(r.name, f"[{style}]{r.status.value}[/{style}]", escape(r.detail))
    console.print(table)

    if any(r.status is CheckStatus.FAIL for r in results):
        raise typer.Exit(1)


@app.command()
def meta() -> None:
    """Show version and platform information."""
    from botwatch.mcp.formatters import format_meta

    console.print(format_meta(_service().get_app_meta()))


@app.command()
def watch(
    interval: Annotated[
        Optional[float], typer.Option("--interval", help="Refresh seconds (default: polling interval)")
    ] = None,
) -> None:
    """Connect the stream and keep refreshing status until Ctrl+C."""

    async def runner() -> None:
        async with _service() as service:
            refresh = interval or service.read_config().polling_interval_ms / 1000
            while True:
                snap = await service.get_snapshot()
                console.rule()
                _print_connection(service.state.current)
                _print_snapshot(snap)
                await asyncio.sleep(refresh)

    try:
        asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@config_app.command("show")
def config_show() -> None:
    """Print saved settings."""
    settings = _service().read_config()

    from rich.table import Table

    table = Table(title="Console Settings")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("API endpoint", settings.api_endpoint or "—")
    table.add_row("Stream endpoint", settings.stream_endpoint or "(derived)")
    table.add_row("Polling interval", f"{settings.polling_interval_ms} ms")
    table.add_row("Auto-reconnect", "yes" if settings.auto_reconnect else "no")
    table.add_row("Bot path", settings.bot_path or "—")
    table.add_row("Launch command", settings.launch_command)
    console.print(table)


@config_app.command("set")
def config_set(
    api: Annotated[Optional[str], typer.Option("--api", help="Bot API endpoint")] = None,
    stream: Annotated[Optional[str], typer.Option("--stream", help="Stream endpoint")] = None,
    interval: Annotated[Optional[int], typer.Option("--interval", help="Polling interval (ms)")] = None,
    auto_reconnect: Annotated[
        Optional[bool], typer.Option("--auto-reconnect/--no-auto-reconnect")
    ] = None,
    bot_path: Annotated[Optional[str], typer.Option("--bot-path", help="Bot project folder")] = None,
) -> None:
    """Update saved settings."""
    changes: dict[str, object] = {}
    if api is not None:
        changes["api_endpoint"] = api
    if stream is not None:
        changes["stream_endpoint"] = stream
    if interval is not None:
        changes["polling_interval_ms"] = interval
    if auto_reconnect is not None:
        changes["auto_reconnect"] = auto_reconnect
    if bot_path is not None:
        changes["bot_path"] = bot_path

    if not changes:
        console.print("[yellow]Nothing to change.[/yellow]")
        raise typer.Exit(1)

    try:
        saved = _service().update_config(**changes)
    except OSError as exc:
        console.print(f"[red]Cannot save settings:[/red] {exc}")
        raise typer.Exit(1)

    console.print("[green]Settings saved.[/green]")
    console.print(f"  API: {saved.api_endpoint}  Interval: {saved.polling_interval_ms} ms")


def main() -> None:
    """Entry point for the botwatch CLI."""
    from botwatch.logging_setup import setup_logging

    setup_logging()
    app()


if __name__ == "__main__":
    main()
