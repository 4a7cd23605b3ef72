"""Lifecycle of the single persistent stream connection to the bot.

Phases run DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED, with a
reconnect task that may be pending alongside. Each session carries a
generation number. Tearing a session down bumps the counter, so events from
a superseded session are dropped instead of touching shared state.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from botwatch.config import EndpointConfig, StreamConfig
from botwatch.core.endpoints import to_stream_endpoint
from botwatch.core.logfile import LocalLogFile
from botwatch.core.reconciler import extract_logs, normalize_snapshot
from botwatch.core.state import ConnectionStateStore, RuntimeCache
from botwatch.models.enums import LogLevel, StreamPhase
from botwatch.models.runtime import ConnectionState

logger = logging.getLogger("botwatch.session")

NOT_CONFIGURED = "Stream endpoint is not configured"
DEFAULT_INTERVAL_MS = 5000

Connector = Callable[[str], Awaitable[Any]]

_STREAM_ERRORS = (OSError, WebSocketException, asyncio.TimeoutError, ValueError)


async def _websockets_connector(url: str) -> Any:
    return await websockets.connect(url)


def reconnect_delay_ms(
    config: EndpointConfig, low: int = 2000, high: int = 30000
) -> int:
    """Reconnect delay derived from the polling interval, clamped to [low, high]."""
    try:
        interval = int(float(config.polling_interval_ms))
    except (TypeError, ValueError):
        interval = DEFAULT_INTERVAL_MS
    return max(low, min(high, interval))


class StreamSessionManager:
    """Owns connect, receive, error, close and scheduled reconnect for the stream."""

    def __init__(
        self,
        state: ConnectionStateStore,
        cache: RuntimeCache,
        config: StreamConfig | None = None,
        *,
        log_file: LocalLogFile | None = None,
        connector: Connector | None = None,
        config_source: Callable[[], EndpointConfig] | None = None,
    ) -> None:
        self._state = state
        self._cache = cache
        self._config = config or StreamConfig()
        self._log_file = log_file
        self._connector = connector or _websockets_connector
        self._config_source = config_source

        self._phase = StreamPhase.DISCONNECTED
        self._generation = 0
        self._task: asyncio.Task | None = None
        self._ws: Any = None
        self._endpoint_config: EndpointConfig | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._manual_disconnect = False

    @property
    def phase(self) -> StreamPhase:
        return self._phase

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def manual_disconnect(self) -> bool:
        return self._manual_disconnect

    # --- Operator entry points ---

    async def connect(
        self, config: EndpointConfig, *, is_reconnect: bool = False
    ) -> ConnectionState:
        """Open a new session, returning once it opens, fails, or the wait elapses."""
        if not is_reconnect:
            self._manual_disconnect = False

        self._cancel_reconnect()
        await self._close_session()
        if is_reconnect and self._manual_disconnect:
            return self._state.current

        self._endpoint_config = config
        endpoint = to_stream_endpoint(config)
        if not endpoint:
            self._phase = StreamPhase.DISCONNECTED
            return self._state.update(
                stream_connected=False, stream_endpoint="", last_error=NOT_CONFIGURED
            )

        self._phase = StreamPhase.CONNECTING
        self._state.update(stream_endpoint=endpoint)

        settled: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._task = asyncio.create_task(
            self._run_session(self._generation, endpoint, settled)
        )

        wait = self._config.reconnect_wait if is_reconnect else self._config.connect_wait
        try:
            await asyncio.wait_for(asyncio.shield(settled), timeout=wait)
        except asyncio.TimeoutError:
            logger.debug("Stream %s still pending after %.1fs", endpoint, wait)

        return self._state.current

    async def disconnect(self) -> ConnectionState:
        """Operator-initiated disconnect; suppresses auto-reconnect until the next connect()."""
        self._manual_disconnect = True
        self._cancel_reconnect()
        await self._close_session()
        self._phase = StreamPhase.DISCONNECTED
        state = self._state.update(stream_connected=False)
        self._append_log("Stream manually disconnected by operator", LogLevel.WARN)
        return state

    async def aclose(self) -> None:
        """Shutdown hook: drop any pending reconnect and close the session quietly."""
        self._manual_disconnect = True
        self._cancel_reconnect()
        await self._close_session()
        self._phase = StreamPhase.DISCONNECTED
        self._state.update(stream_connected=False)

    # --- Session task ---

    async def _run_session(
        self, generation: int, endpoint: str, settled: asyncio.Future
    ) -> None:
        try:
            await self._serve(generation, endpoint, settled)
        finally:
            self._settle(settled)

    async def _serve(self, generation: int, endpoint: str, settled: asyncio.Future) -> None:
        try:
            ws = await self._connector(endpoint)
        except _STREAM_ERRORS as exc:
            self._handle_error(generation, exc)
            self._handle_close(generation, endpoint)
            return

        if generation != self._generation:
            await self._close_quietly(ws)
            return

        self._ws = ws
        self._handle_open(generation, endpoint)
        self._settle(settled)

        try:
            async for message in ws:
                self._receive(generation, message)
        except ConnectionClosedOK:
            pass
        except ConnectionClosed as exc:
            self._handle_error(generation, exc)
        except _STREAM_ERRORS as exc:
            self._handle_error(generation, exc)
        finally:
            # No-op for a superseded generation, including cancellation by teardown.
            self._handle_close(generation, endpoint)

    def _receive(self, generation: int, raw: Any) -> None:
        """Process one frame; a frame that cannot be processed is logged and skipped."""
        try:
            self._handle_message(generation, raw)
        except Exception:
            logger.exception("Dropping stream message that could not be processed")

    @staticmethod
    def _settle(settled: asyncio.Future) -> None:
        if not settled.done():
            settled.set_result(None)

    # --- Event handlers ---

    def _handle_open(self, generation: int, endpoint: str) -> None:
        if generation != self._generation:
            return
        self._phase = StreamPhase.CONNECTED
        self._state.update(
            stream_connected=True,
            last_error=None,
            last_event_at=datetime.now(timezone.utc),
        )
        logger.info("Stream connected: %s", endpoint)
        self._append_log(f"Stream connected: {endpoint}")

    def _handle_message(self, generation: int, raw: Any) -> None:
        if generation != self._generation:
            return

        if isinstance(raw, (bytes, bytearray, memoryview)):
            text = bytes(raw).decode("utf-8", errors="replace")
        else:
            text = str(raw)

        try:
            parsed: Any = json.loads(text)
        except ValueError:
            parsed = text

        if isinstance(parsed, str):
            lines = extract_logs(None, parsed)
        else:
            snapshot = normalize_snapshot(parsed, self._cache.snapshot)
            if snapshot is not None:
                self._cache.replace_snapshot(snapshot)
            lines = extract_logs(parsed)

        if lines:
            self._cache.append_logs(lines)

        # An active stream means the backend is alive even if HTTP probing fails.
        self._state.update(
            last_event_at=datetime.now(timezone.utc),
            api_reachable=True,
            last_error=None,
        )

    def _handle_error(self, generation: int, exc: BaseException) -> None:
        if generation != self._generation:
            return
        message = str(exc) or type(exc).__name__
        logger.warning("Stream error: %s", message)
        self._state.update(last_error=message)

    def _handle_close(self, generation: int, endpoint: str) -> None:
        if generation != self._generation:
            return
        was_connected = self._state.current.stream_connected
        self._phase = StreamPhase.DISCONNECTED
        self._ws = None
        self._state.update(stream_connected=False)

        if was_connected:
            logger.info("Stream disconnected: %s", endpoint)
            self._append_log(f"Stream disconnected: {endpoint}", LogLevel.WARN)

        if not self._manual_disconnect:
            self._schedule_reconnect(self._latest_config())

    # --- Reconnect scheduling ---

    def _latest_config(self) -> EndpointConfig | None:
        if self._config_source is not None:
            return self._config_source()
        return self._endpoint_config

    def _schedule_reconnect(self, config: EndpointConfig | None) -> None:
        if config is None or not config.auto_reconnect or self._manual_disconnect:
            return
        self._cancel_reconnect()
        delay = reconnect_delay_ms(
            config, self._config.min_reconnect_ms, self._config.max_reconnect_ms
        )
        logger.info("Stream reconnect scheduled in %d ms", delay)
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay, config))

    async def _reconnect_after(self, delay_ms: int, config: EndpointConfig) -> None:
        await asyncio.sleep(delay_ms / 1000)
        # Detach first so connect() does not cancel the task it runs in.
        self._reconnect_task = None
        await self.connect(config, is_reconnect=True)

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # --- Teardown ---

    async def _close_session(self) -> None:
        self._generation += 1
        task, ws = self._task, self._ws
        self._task = None
        self._ws = None

        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            await asyncio.wait({task})
        if ws is not None:
            await self._close_quietly(ws)

    @staticmethod
    async def _close_quietly(ws: Any) -> None:
        try:
            await ws.close()
        except _STREAM_ERRORS as exc:
            logger.debug("Ignoring error while closing stream: %s", exc)

    def _append_log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        if self._log_file is not None:
            self._log_file.append(message, level)
