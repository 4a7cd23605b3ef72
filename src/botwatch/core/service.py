"""ConsoleService: the request/response façade the CLI and MCP server talk to."""

from __future__ import annotations

import logging
import platform
import sys
from dataclasses import replace

import httpx
import websockets

from botwatch import __version__
from botwatch.config import BotwatchConfig, EndpointConfig
from botwatch.core.checks import check_api, check_stream, local_checks
from botwatch.core.dispatcher import ActionDispatcher
from botwatch.core.endpoints import normalize_http_endpoint, to_stream_endpoint
from botwatch.core.logfile import LocalLogFile
from botwatch.core.prober import HttpProber
from botwatch.core.session import Connector, StreamSessionManager
from botwatch.core.settings import SettingsStore, defaults_from, endpoint_config
from botwatch.core.state import ConnectionStateStore, RuntimeCache
from botwatch.models.runtime import (
    ActionResult,
    AppMeta,
    ConnectionState,
    SetupCheckResult,
    Snapshot,
    StudioSettings,
)

logger = logging.getLogger("botwatch.service")

# Share of the merged log view given to local vs remote lines.
LOCAL_SHARE = 40
REMOTE_SHARE = 210


class ConsoleService:
    """Owns the shared state and wires prober, stream manager and dispatcher together."""

    def __init__(
        self,
        config: BotwatchConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        connector: Connector | None = None,
    ) -> None:
        self._config = config or BotwatchConfig.load()
        self.settings_store = SettingsStore(
            self._config.settings_path, defaults_from(self._config.endpoint)
        )
        self.log_file = LocalLogFile(self._config.log_path)

        initial = self.settings_store.read()
        self.state = ConnectionStateStore(
            api_endpoint=normalize_http_endpoint(initial.api_endpoint),
            stream_endpoint=to_stream_endpoint(endpoint_config(initial)),
        )
        self.cache = RuntimeCache(log_limit=self._config.logs.cache_limit)

        self.prober = HttpProber(
            self.state,
            self.cache,
            self._config.probe,
            transport=transport,
            log_tail=self._config.logs.remote_tail,
        )
        self.session = StreamSessionManager(
            self.state,
            self.cache,
            self._config.stream,
            log_file=self.log_file,
            connector=connector,
            config_source=self._endpoint,
        )
        self.dispatcher = ActionDispatcher(self.prober, self.cache, self.log_file)

    async def __aenter__(self) -> ConsoleService:
        await self.startup()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.shutdown()

    @property
    def config(self) -> BotwatchConfig:
        return self._config

    def _endpoint(self) -> EndpointConfig:
        return endpoint_config(self.settings_store.read())

    # --- Lifecycle ---

    async def startup(self, *, connect_stream: bool | None = None) -> ConnectionState:
        """Normalize saved settings, seed the log file, probe, and optionally open the stream."""
        try:
            settings = self.save_config(self.read_config())
        except OSError as exc:
            logger.warning("Cannot persist settings: %s", exc)
            settings = self.read_config()

        self.log_file.ensure()
        endpoint = endpoint_config(settings)
        await self.prober.probe(endpoint)

        should_connect = settings.auto_reconnect if connect_stream is None else connect_stream
        if should_connect:
            await self.session.connect(endpoint)
        return self.state.current

    async def shutdown(self) -> None:
        """Flush pending reconnects, close the stream and the HTTP client."""
        if self.state.current.stream_connected or self.session.reconnect_scheduled:
            await self.session.disconnect()
        else:
            await self.session.aclose()
        await self.prober.aclose()

    # --- Façade operations ---

    def get_app_meta(self) -> AppMeta:
        return AppMeta(
            app_version=__version__,
            python_version=platform.python_version(),
            platform=sys.platform,
            httpx_version=httpx.__version__,
            websockets_version=getattr(websockets, "__version__", "unknown"),
        )

    def read_config(self) -> StudioSettings:
        return self.settings_store.read()

    def save_config(self, settings: StudioSettings) -> StudioSettings:
        saved = self.settings_store.save(settings)
        endpoint = endpoint_config(saved)
        self.state.set_endpoints(
            normalize_http_endpoint(endpoint.api_endpoint), to_stream_endpoint(endpoint)
        )
        return saved

    def update_config(self, **changes: object) -> StudioSettings:
        return self.save_config(replace(self.read_config(), **changes))

    async def run_setup_checks(self, bot_path: str | None = None) -> list[SetupCheckResult]:
        settings = self.read_config()
        path = bot_path if bot_path is not None else settings.bot_path

        results = await local_checks(settings, path)
        connection = await self.prober.probe(endpoint_config(settings))
        results.append(check_api(settings, connection))
        results.append(check_stream(settings, connection))

        self.log_file.append("Setup checks executed")
        return results

    async def get_snapshot(self) -> Snapshot:
        remote = await self.prober.fetch_snapshot(self._endpoint())
        if remote is not None:
            return remote
        return self.cache.touch_heartbeat()

    async def perform_bot_action(self, action: str) -> ActionResult:
        return await self.dispatcher.perform_action(self._endpoint(), action)

    async def get_logs(self) -> list[str]:
        remote = await self.prober.fetch_logs(self._endpoint())
        local = self.log_file.tail(self._config.logs.local_tail)
        if not remote:
            return local
        return local[-LOCAL_SHARE:] + remote[-REMOTE_SHARE:]

    async def test_connection(self) -> ConnectionState:
        endpoint = self._endpoint()
        status = await self.prober.probe(endpoint)
        if status.api_reachable:
            await self.prober.fetch_snapshot(endpoint)
        return status

    def get_connection_status(self) -> ConnectionState:
        endpoint = self._endpoint()
        current = self.state.current
        return self.state.update(
            api_endpoint=normalize_http_endpoint(endpoint.api_endpoint),
            stream_endpoint=current.stream_endpoint or to_stream_endpoint(endpoint),
        )

    async def connect_stream(self) -> ConnectionState:
        return await self.session.connect(self._endpoint())

    async def disconnect_stream(self) -> ConnectionState:
        return await self.session.disconnect()
