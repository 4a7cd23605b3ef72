"""Shared connection state and the snapshot/log cache.

Both containers are owned by ConsoleService and handed to the prober, the
stream session manager and the action dispatcher. Every write swaps in a new
frozen object, so readers never observe a half-applied update.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from botwatch.models.enums import ConnectionMode
from botwatch.models.runtime import SEED_SNAPSHOT, ConnectionState, Snapshot, iso_now


def _derive_mode(state: ConnectionState) -> ConnectionState:
    mode = (
        ConnectionMode.REMOTE
        if state.api_reachable or state.stream_connected
        else ConnectionMode.LOCAL
    )
    if state.mode is mode:
        return state
    return replace(state, mode=mode)


class ConnectionStateStore:
    """Single record of backend reachability and stream status."""

    def __init__(self, api_endpoint: str = "", stream_endpoint: str = "") -> None:
        self._state = ConnectionState(
            api_endpoint=api_endpoint, stream_endpoint=stream_endpoint
        )

    @property
    def current(self) -> ConnectionState:
        return self._state

    def update(self, **changes: Any) -> ConnectionState:
        """Replace the state with ``changes`` applied; ``mode`` is always re-derived."""
        changes.pop("mode", None)
        self._state = _derive_mode(replace(self._state, **changes))
        return self._state

    def set_endpoints(self, api_endpoint: str, stream_endpoint: str) -> ConnectionState:
        return self.update(api_endpoint=api_endpoint, stream_endpoint=stream_endpoint)


class RuntimeCache:
    """Last-write-wins snapshot plus a bounded FIFO of remote log lines."""

    def __init__(self, seed: Snapshot = SEED_SNAPSHOT, log_limit: int = 500) -> None:
        self._snapshot = replace(seed, last_heartbeat=iso_now())
        self._remote_snapshot: Snapshot | None = None
        self._logs: deque[str] = deque(maxlen=log_limit)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def remote_snapshot(self) -> Snapshot | None:
        return self._remote_snapshot

    def replace_snapshot(self, snapshot: Snapshot, *, remote: bool = True) -> Snapshot:
        self._snapshot = snapshot
        if remote:
            self._remote_snapshot = snapshot
        return snapshot

    def touch_heartbeat(self) -> Snapshot:
        """Restamp the heartbeat of the local snapshot and return it."""
        self._snapshot = replace(self._snapshot, last_heartbeat=iso_now())
        return self._snapshot

    # --- Logs ---

    def append_logs(self, lines: Iterable[str]) -> int:
        batch = list(lines)
        self._logs.extend(batch)
        return len(batch)

    def replace_logs(self, lines: Iterable[str]) -> None:
        self._logs.clear()
        self._logs.extend(lines)

    def logs(self, limit: int | None = None) -> list[str]:
        lines = list(self._logs)
        if limit is not None:
            return lines[-limit:] if limit > 0 else []
        return lines
