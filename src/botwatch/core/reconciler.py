"""Map arbitrary backend payload shapes onto Snapshot and formatted log lines."""

from __future__ import annotations

import json
import math
import re
from datetime import datetime
from typing import Any

from botwatch.models.enums import BotStatus, LogLevel
from botwatch.models.runtime import Snapshot, iso_now

LOG_LIMIT = 500

# Candidate keys per logical field, tried in order.
STATUS_KEYS = ("status", "state", "mode")
QUEUE_KEYS = ("queueDepth", "queue_depth", "queue")
JOBS_KEYS = ("jobsProcessed", "jobs_processed", "jobs")
SUCCESS_KEYS = ("successRate", "success_rate", "success")
WORKERS_KEYS = ("activeWorkers", "active_workers", "workers")
HEARTBEAT_KEYS = ("lastHeartbeat", "last_heartbeat", "heartbeat")

LOG_MESSAGE_KEYS = ("message", "log", "msg")
LOG_TIME_KEYS = ("timestamp", "time", "ts")
LOG_LEVEL_KEYS = ("level", "severity")

QUEUE_RANGE = (0, 10_000)
JOBS_RANGE = (0, 100_000_000)
SUCCESS_RANGE = (0.0, 100.0)
WORKERS_RANGE = (0, 1_000)

_STATUS_MAP: dict[str, BotStatus] = {
    "idle": BotStatus.IDLE,
    "running": BotStatus.RUNNING,
    "paused": BotStatus.PAUSED,
    "stopped": BotStatus.STOPPED,
    "active": BotStatus.RUNNING,
    "busy": BotStatus.RUNNING,
    "processing": BotStatus.RUNNING,
    "halted": BotStatus.STOPPED,
    "terminated": BotStatus.STOPPED,
    "off": BotStatus.STOPPED,
}

_TIMESTAMPED_RE = re.compile(r"^\[\d{4}-\d{2}-\d{2}T")
_LINE_SPLIT_RE = re.compile(r"\r?\n")


def normalize_status(value: Any) -> BotStatus:
    """Map a free-form status string to the closed BotStatus set."""
    if isinstance(value, BotStatus):
        return value
    key = str(value if value is not None else "idle").strip().lower()
    return _STATUS_MAP.get(key, BotStatus.IDLE)


def _first(source: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = source.get(key)
        if value is not None:
            return value
    return None


def _number_or(value: Any, fallback: float) -> float:
    """Coerce ints, floats and numeric strings; anything else yields the fallback."""
    if isinstance(value, bool) or value is None:
        return fallback
    if isinstance(value, int):
        # arbitrarily large JSON integers; the caller clamps them
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return fallback
    else:
        return fallback
    return number if math.isfinite(number) else fallback


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, value))


def normalize_snapshot(payload: Any, previous: Snapshot) -> Snapshot | None:
    """Build a Snapshot from a backend payload, falling back to ``previous`` per field.

    Returns None only when the payload is not a JSON object.
    """
    if not isinstance(payload, dict):
        return None

    if isinstance(payload.get("snapshot"), dict):
        source = payload["snapshot"]
    elif isinstance(payload.get("data"), dict):
        source = payload["data"]
    else:
        source = payload

    raw_status = _first(source, STATUS_KEYS)
    heartbeat = _first(source, HEARTBEAT_KEYS)

    return Snapshot(
        status=normalize_status(raw_status) if raw_status is not None else previous.status,
        queue_depth=int(
            _clamp(_number_or(_first(source, QUEUE_KEYS), previous.queue_depth), QUEUE_RANGE)
        ),
        jobs_processed=int(
            _clamp(_number_or(_first(source, JOBS_KEYS), previous.jobs_processed), JOBS_RANGE)
        ),
        success_rate=float(
            _clamp(_number_or(_first(source, SUCCESS_KEYS), previous.success_rate), SUCCESS_RANGE)
        ),
        active_workers=int(
            _clamp(
                _number_or(_first(source, WORKERS_KEYS), previous.active_workers),
                WORKERS_RANGE,
            )
        ),
        last_heartbeat=str(heartbeat) if heartbeat is not None else iso_now(),
    )


def format_log_line(
    message: str,
    level: LogLevel | str = LogLevel.INFO,
    at: datetime | str | None = None,
) -> str:
    """Render the canonical ``[timestamp] [LEVEL] message`` line."""
    if isinstance(at, datetime):
        stamp = at.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    else:
        stamp = at or iso_now()
    tag = level.value if isinstance(level, LogLevel) else str(level)
    return f"[{stamp}] [{tag}] {message}"


def _format_entry(entry: Any) -> str | None:
    if isinstance(entry, str):
        if not entry.strip():
            return None
        if _TIMESTAMPED_RE.match(entry):
            return entry
        return format_log_line(entry, LogLevel.REMOTE)

    if isinstance(entry, dict):
        message = _first(entry, LOG_MESSAGE_KEYS)
        if message is None:
            message = json.dumps(entry, default=str)
        message = str(message)
        if not message.strip():
            return None
        timestamp = _first(entry, LOG_TIME_KEYS)
        level = _first(entry, LOG_LEVEL_KEYS)
        return format_log_line(
            message,
            str(level).upper() if level is not None else LogLevel.REMOTE,
            str(timestamp) if timestamp is not None else None,
        )

    return None


def _entries_from(payload: Any, raw_text: str) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("logs"), list):
            return payload["logs"]
        if isinstance(payload.get("data"), list):
            return payload["data"]
        if isinstance(payload.get("log"), str):
            return [payload["log"]]
        if isinstance(payload.get("message"), str):
            return [payload["message"]]
    if isinstance(raw_text, str) and raw_text.strip():
        return _LINE_SPLIT_RE.split(raw_text)
    return []


def extract_logs(payload: Any, raw_text: str = "") -> list[str]:
    """Flatten any supported log payload into formatted lines, newest last, capped at 500."""
    lines = [
        line
        for line in (_format_entry(entry) for entry in _entries_from(payload, raw_text))
        if line is not None
    ]
    return lines[-LOG_LIMIT:]
