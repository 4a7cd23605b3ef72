"""Bounded-timeout HTTP probing against ranked candidate paths."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from botwatch.config import EndpointConfig, ProbeConfig
from botwatch.core.endpoints import join_url, normalize_http_endpoint
from botwatch.core.reconciler import extract_logs, normalize_snapshot
from botwatch.core.state import ConnectionStateStore, RuntimeCache
from botwatch.models.runtime import CandidateOutcome, ConnectionState, HttpResponse, Snapshot

logger = logging.getLogger("botwatch.prober")

HEALTH_PATHS = ("/health", "/api/health", "/status", "/api/status", "/")
SNAPSHOT_PATHS = ("/snapshot", "/api/snapshot", "/bot/snapshot", "/status", "/api/status")
LOGS_PATHS = ("/logs", "/api/logs", "/runtime/logs", "/api/runtime/logs")
ACTION_PATHS = ("/action", "/api/action", "/control/action", "/api/control/action")

ACCEPT_HEADER = "application/json, text/plain;q=0.9, */*;q=0.8"

NOT_CONFIGURED = "API endpoint is not configured"
NO_RESPONSE = "API endpoint did not respond"


def server_responded(response: HttpResponse) -> bool:
    """Health heuristic: any 2xx, or any other status below 500 except 404."""
    if response.ok:
        return True
    return 200 <= response.status < 500 and response.status != 404


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def _first_success(
    paths: tuple[str, ...],
    attempt: Callable[[str], Awaitable[tuple[Any, str | None]]],
) -> CandidateOutcome:
    """Try each path in order; the first one that returns a value wins.

    ``attempt`` returns ``(value, error)``. A value of None means the path
    did not produce anything usable.
    """
    last_error: str | None = None
    for index, path in enumerate(paths, start=1):
        value, error = await attempt(path)
        if value is not None:
            return CandidateOutcome(value=value, path=path, attempts=index)
        if error:
            last_error = error
    return CandidateOutcome(attempts=len(paths), last_error=last_error)


class HttpProber:
    """Reachability probes and snapshot/log/action requests against the bot API."""

    def __init__(
        self,
        state: ConnectionStateStore,
        cache: RuntimeCache,
        config: ProbeConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        log_tail: int = 250,
    ) -> None:
        self._state = state
        self._cache = cache
        self._config = config or ProbeConfig()
        self._transport = transport
        self._log_tail = log_tail
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                headers={"Accept": ACCEPT_HEADER},
                follow_redirects=True,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        payload: dict | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Issue one request. Transport failures come back as ``status=0`` with an error."""
        try:
            response = await self.client.request(
                method,
                url,
                json=payload,
                timeout=timeout or self._config.request_timeout,
            )
        except httpx.HTTPError as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            return HttpResponse(ok=False, status=0, error=_error_text(exc))

        text = response.text
        data = None
        if text:
            try:
                data = json.loads(text)
            except ValueError:
                data = None

        return HttpResponse(
            ok=response.is_success,
            status=response.status_code,
            text=text,
            data=data,
        )

    # --- Reachability ---

    def should_probe(self) -> bool:
        """True when no probe has run yet or the cool-down has elapsed."""
        last = self._state.current.last_check
        if last is None:
            return True
        elapsed = (datetime.now(timezone.utc) - last).total_seconds()
        return elapsed > self._config.probe_cooldown_seconds

    async def probe(self, config: EndpointConfig) -> ConnectionState:
        api = normalize_http_endpoint(config.api_endpoint)
        self._state.update(api_endpoint=api, last_check=datetime.now(timezone.utc))

        if not api:
            return self._state.update(
                api_reachable=False, api_latency_ms=None, last_error=NOT_CONFIGURED
            )

        started = time.monotonic()

        async def attempt(path: str) -> tuple[Any, str | None]:
            response = await self.request(
                join_url(api, path), timeout=self._config.probe_timeout
            )
            return (response if server_responded(response) else None), response.error

        outcome = await _first_success(HEALTH_PATHS, attempt)

        if outcome.succeeded:
            latency = max(0, int((time.monotonic() - started) * 1000))
            logger.debug("Probe of %s succeeded on %s in %d ms", api, outcome.path, latency)
            return self._state.update(
                api_reachable=True, api_latency_ms=latency, last_error=None
            )

        error = outcome.last_error or NO_RESPONSE
        logger.info("Backend %s unreachable: %s", api, error)
        return self._state.update(api_reachable=False, api_latency_ms=None, last_error=error)

    def _mark_reachable(self) -> None:
        self._state.update(api_reachable=True, last_error=None)

    # --- Snapshot ---

    async def _snapshot_from(self, api: str) -> Snapshot | None:
        async def attempt(path: str) -> tuple[Any, str | None]:
            response = await self.request(join_url(api, path))
            if not response.ok:
                return None, response.error
            return normalize_snapshot(response.data, self._cache.snapshot), None

        outcome = await _first_success(SNAPSHOT_PATHS, attempt)
        return outcome.value

    async def fetch_snapshot(self, config: EndpointConfig) -> Snapshot | None:
        """Fetch and cache a remote snapshot; None when no remote data is available."""
        api = normalize_http_endpoint(config.api_endpoint)
        if not api:
            return None

        if self.should_probe():
            await self.probe(config)

        snapshot = await self._snapshot_from(api)
        if snapshot is not None:
            self._mark_reachable()
            return self._cache.replace_snapshot(snapshot)

        if self._state.current.stream_connected and self._cache.remote_snapshot:
            return self._cache.replace_snapshot(self._cache.remote_snapshot)

        return None

    # --- Logs ---

    async def fetch_logs(self, config: EndpointConfig) -> list[str]:
        """Fetch remote logs, replacing the cache; cached lines when nothing answers."""
        api = normalize_http_endpoint(config.api_endpoint)
        if not api:
            return []

        async def attempt(path: str) -> tuple[Any, str | None]:
            response = await self.request(join_url(api, path))
            if not response.ok:
                return None, response.error
            lines = extract_logs(response.data, response.text)
            return (lines or None), None

        outcome = await _first_success(LOGS_PATHS, attempt)
        if outcome.succeeded:
            self._cache.replace_logs(outcome.value)
            self._mark_reachable()

        return self._cache.logs(self._log_tail)

    # --- Actions ---

    async def send_action(self, config: EndpointConfig, action: str) -> CandidateOutcome:
        """POST ``{"action": action}`` to the first accepting path.

        ``outcome.path`` is None when no path accepted, which tells the
        caller to fall back to local simulation. Otherwise ``outcome.value``
        is the resulting snapshot, from the response body or a follow-up
        fetch, and may be None if neither produced one.
        """
        api = normalize_http_endpoint(config.api_endpoint)
        if not api:
            return CandidateOutcome(last_error=NOT_CONFIGURED)

        async def attempt(path: str) -> tuple[Any, str | None]:
            response = await self.request(
                join_url(api, path),
                method="POST",
                payload={"action": action},
                timeout=self._config.action_timeout,
            )
            if not response.ok:
                return None, response.error or f"HTTP {response.status}"
            return response, None

        outcome = await _first_success(ACTION_PATHS, attempt)
        if not outcome.succeeded:
            logger.info("No action path accepted '%s': %s", action, outcome.last_error)
            return outcome

        snapshot = normalize_snapshot(outcome.value.data, self._cache.snapshot)
        if snapshot is not None:
            self._mark_reachable()
            self._cache.replace_snapshot(snapshot)
        else:
            snapshot = await self.fetch_snapshot(config)

        return CandidateOutcome(
            value=snapshot, path=outcome.path, attempts=outcome.attempts
        )
