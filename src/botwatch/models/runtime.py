"""Frozen dataclass models for connection and bot runtime data."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from botwatch.models.enums import BotStatus, CheckStatus, ConnectionMode


def _now() -> datetime:
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """UTC timestamp with millisecond precision and a Z suffix."""
    return _now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """Reachability of the backend and status of the streaming session."""

    mode: ConnectionMode = ConnectionMode.LOCAL
    api_reachable: bool = False
    api_endpoint: str = ""
    api_latency_ms: int | None = None
    stream_connected: bool = False
    stream_endpoint: str = ""
    last_check: datetime | None = None
    last_event_at: datetime | None = None
    last_error: str | None = None


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Point-in-time view of bot run status and throughput counters."""

    status: BotStatus = BotStatus.IDLE
    queue_depth: int = 0
    jobs_processed: int = 0
    success_rate: float = 0.0
    active_workers: int = 0
    last_heartbeat: str = field(default_factory=iso_now)


# Shown until the backend reports real numbers.
SEED_SNAPSHOT = Snapshot(
    status=BotStatus.IDLE,
    queue_depth=18,
    jobs_processed=1284,
    success_rate=94.3,
    active_workers=4,
)


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Result of an operator action, remote or simulated."""

    ok: bool
    message: str
    snapshot: Snapshot


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """Outcome of one HTTP request. status == 0 means transport failure."""

    ok: bool
    status: int
    text: str = ""
    data: Any = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class CandidateOutcome:
    """Result of walking a ranked list of candidate paths."""

    value: Any = None
    path: str | None = None  # winning path, None when every candidate failed
    attempts: int = 0
    last_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.path is not None


@dataclass(frozen=True, slots=True)
class SetupCheckResult:
    """One row of the setup checklist."""

    name: str
    status: CheckStatus
    detail: str


@dataclass(frozen=True, slots=True)
class AppMeta:
    """Versions and platform info about the running console."""

    app_version: str
    python_version: str
    platform: str
    httpx_version: str
    websockets_version: str


@dataclass(frozen=True, slots=True)
class StudioSettings:
    """Operator-editable settings persisted between sessions."""

    api_endpoint: str = "http://127.0.0.1:5050"
    stream_endpoint: str = ""
    polling_interval_ms: int = 5000
    auto_reconnect: bool = True
    bot_path: str = ""
    launch_command: str = "python3 main.py"
    workspace_path: str = ""
    autostart: bool = False
    desktop_notifications: bool = True
    safe_mode: bool = True
    saved_at: datetime = field(default_factory=_now)
