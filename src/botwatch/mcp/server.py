"""FastMCP server factory exposing the console façade as tools."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from botwatch.config import BotwatchConfig
from botwatch.core.service import ConsoleService
from botwatch.mcp.formatters import (
    format_action_result,
    format_checks,
    format_connection,
    format_logs,
    format_snapshot,
)


def create_server(config: BotwatchConfig | None = None, service: ConsoleService | None = None):
    """Create and return a configured FastMCP server instance.

    Args:
        config: Optional pre-loaded config. If None, loads from cwd.
        service: Optional pre-built service (tests inject one with fake transports).
    """
    from mcp.server.fastmcp import FastMCP

    _service = service or ConsoleService(config or BotwatchConfig.load())

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[None]:
        await _service.startup()
        try:
            yield
        finally:
            await _service.shutdown()

    mcp = FastMCP(
        "botwatch",
        instructions="Operator console for a remote automation bot",
        lifespan=lifespan,
    )

    @mcp.tool()
    async def botwatch_status() -> str:
        """Show current backend reachability and stream status without probing."""
        return format_connection(_service.get_connection_status())

    @mcp.tool()
    async def botwatch_test_connection() -> str:
        """Probe the bot API health endpoints now and refresh the snapshot if reachable."""
        return format_connection(await _service.test_connection())

    @mcp.tool()
    async def botwatch_snapshot() -> str:
        """Get the bot's run status and throughput counters.

        Falls back to the locally cached snapshot when the backend is unreachable.
        """
        return format_snapshot(await _service.get_snapshot())

    @mcp.tool()
    async def botwatch_action(action: str) -> str:
        """Send an operator command to the bot.

        Args:
            action: One of start, pause, resume, stop, sync. Other names are
                accepted and ignored.
        """
        return format_action_result(await _service.perform_bot_action(action))

    @mcp.tool()
    async def botwatch_logs(limit: int | None = None) -> str:
        """Get recent log lines, merging local console logs with remote bot logs.

        Args:
            limit: Max lines to return (default: all merged lines)
        """
        lines = await _service.get_logs()
        if limit is not None:
            lines = lines[-limit:] if limit > 0 else []
        return format_logs(lines)

    @mcp.tool()
    async def botwatch_connect_stream() -> str:
        """Open (or reopen) the live event stream from the bot."""
        return format_connection(await _service.connect_stream())

    @mcp.tool()
    async def botwatch_disconnect_stream() -> str:
        """Close the live event stream and suppress auto-reconnect."""
        return format_connection(await _service.disconnect_stream())

    @mcp.tool()
    async def botwatch_setup_checks(bot_path: str | None = None) -> str:
        """Run environment and connectivity checks.

        Args:
            bot_path: Bot project folder to validate (default from settings)
        """
        return format_checks(await _service.run_setup_checks(bot_path))

    return mcp


def main() -> None:
    """Entry point for botwatch-mcp (stdio transport)."""
    from botwatch.logging_setup import setup_logging

    setup_logging()
    server = create_server()
    server.run()


if __name__ == "__main__":
    main()
