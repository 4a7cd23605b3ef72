"""Layered configuration: .botwatch/config.toml -> BOTWATCH_* env vars -> defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib  # 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

_TRUTHY = {"1", "true", "yes", "on"}


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


@dataclass(frozen=True, slots=True)
class EndpointConfig:
    """Where the bot lives and how the console follows it."""

    api_endpoint: str = "http://127.0.0.1:5050"
    stream_endpoint: str = ""
    polling_interval_ms: int = 5000
    auto_reconnect: bool = True


@dataclass(frozen=True, slots=True)
class ProbeConfig:
    """HTTP probe timeouts, in seconds."""

    probe_timeout: float = 4.5
    request_timeout: float = 5.0
    action_timeout: float = 5.5
    probe_cooldown_seconds: float = 15.0


@dataclass(frozen=True, slots=True)
class StreamConfig:
    """Stream handshake waits (seconds) and reconnect bounds (ms)."""

    connect_wait: float = 2.2
    reconnect_wait: float = 1.4
    min_reconnect_ms: int = 2000
    max_reconnect_ms: int = 30000


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Log cache and local log file settings."""

    cache_limit: int = 500
    local_tail: int = 120
    remote_tail: int = 250
    file_name: str = "studio-runtime.log"


@dataclass(frozen=True, slots=True)
class BotwatchConfig:
    """Top-level configuration container."""

    project_path: Path = field(default_factory=Path.cwd)
    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    logs: LogConfig = field(default_factory=LogConfig)

    @property
    def state_dir(self) -> Path:
        return self.project_path / ".botwatch"

    @property
    def settings_path(self) -> Path:
        return self.state_dir / "settings.json"

    @property
    def log_path(self) -> Path:
        return self.state_dir / self.logs.file_name

    @classmethod
    def load(cls, project_path: Path | None = None) -> BotwatchConfig:
        """Load config with layering: TOML file -> env vars -> defaults."""
        project = Path(project_path) if project_path else Path.cwd()
        toml_path = project / ".botwatch" / "config.toml"

        toml_data: dict = {}
        if toml_path.is_file():
            with open(toml_path, "rb") as f:
                toml_data = tomllib.load(f)

        endpoint_data = toml_data.get("endpoint", {})
        probe_data = toml_data.get("probe", {})
        stream_data = toml_data.get("stream", {})
        log_data = toml_data.get("logs", {})

        # Use literal defaults (slots=True prevents class-level attribute access)
        _endpoint_defaults = EndpointConfig()
        _probe_defaults = ProbeConfig()
        _stream_defaults = StreamConfig()
        _log_defaults = LogConfig()

        endpoint = EndpointConfig(
            api_endpoint=os.environ.get(
                "BOTWATCH_API_ENDPOINT",
                endpoint_data.get("api_endpoint", _endpoint_defaults.api_endpoint),
            ),
            stream_endpoint=os.environ.get(
                "BOTWATCH_STREAM_ENDPOINT",
                endpoint_data.get("stream_endpoint", _endpoint_defaults.stream_endpoint),
            ),
            polling_interval_ms=int(
                os.environ.get(
                    "BOTWATCH_POLLING_INTERVAL_MS",
                    endpoint_data.get(
                        "polling_interval_ms", _endpoint_defaults.polling_interval_ms
                    ),
                )
            ),
            auto_reconnect=_as_bool(
                os.environ.get(
                    "BOTWATCH_AUTO_RECONNECT",
                    endpoint_data.get("auto_reconnect", _endpoint_defaults.auto_reconnect),
                )
            ),
        )

        probe = ProbeConfig(
            probe_timeout=float(
                os.environ.get(
                    "BOTWATCH_PROBE_TIMEOUT",
                    probe_data.get("probe_timeout", _probe_defaults.probe_timeout),
                )
            ),
            request_timeout=float(
                probe_data.get("request_timeout", _probe_defaults.request_timeout)
            ),
            action_timeout=float(
                probe_data.get("action_timeout", _probe_defaults.action_timeout)
            ),
            probe_cooldown_seconds=float(
                os.environ.get(
                    "BOTWATCH_PROBE_COOLDOWN",
                    probe_data.get(
                        "probe_cooldown_seconds", _probe_defaults.probe_cooldown_seconds
                    ),
                )
            ),
        )

        stream = StreamConfig(
            connect_wait=float(
                stream_data.get("connect_wait", _stream_defaults.connect_wait)
            ),
            reconnect_wait=float(
                stream_data.get("reconnect_wait", _stream_defaults.reconnect_wait)
            ),
            min_reconnect_ms=int(
                stream_data.get("min_reconnect_ms", _stream_defaults.min_reconnect_ms)
            ),
            max_reconnect_ms=int(
                stream_data.get("max_reconnect_ms", _stream_defaults.max_reconnect_ms)
            ),
        )

        logs = LogConfig(
            cache_limit=int(log_data.get("cache_limit", _log_defaults.cache_limit)),
            local_tail=int(log_data.get("local_tail", _log_defaults.local_tail)),
            remote_tail=int(log_data.get("remote_tail", _log_defaults.remote_tail)),
            file_name=os.environ.get(
                "BOTWATCH_LOG_FILE",
                log_data.get("file_name", _log_defaults.file_name),
            ),
        )

        return cls(
            project_path=project,
            endpoint=endpoint,
            probe=probe,
            stream=stream,
            logs=logs,
        )
