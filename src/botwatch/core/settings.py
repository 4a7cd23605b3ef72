"""JSON persistence for operator settings."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from botwatch.config import EndpointConfig
from botwatch.models.runtime import StudioSettings

logger = logging.getLogger("botwatch.settings")

POLLING_RANGE_MS = (1000, 120_000)

_BOOL_FIELDS = {"auto_reconnect", "autostart", "desktop_notifications", "safe_mode"}
_STR_FIELDS = {"api_endpoint", "stream_endpoint", "bot_path", "launch_command", "workspace_path"}


def defaults_from(endpoint: EndpointConfig) -> StudioSettings:
    """Settings seeded from the layered endpoint config."""
    return StudioSettings(
        api_endpoint=endpoint.api_endpoint,
        stream_endpoint=endpoint.stream_endpoint,
        polling_interval_ms=endpoint.polling_interval_ms,
        auto_reconnect=endpoint.auto_reconnect,
    )


def endpoint_config(settings: StudioSettings) -> EndpointConfig:
    return EndpointConfig(
        api_endpoint=settings.api_endpoint,
        stream_endpoint=settings.stream_endpoint,
        polling_interval_ms=settings.polling_interval_ms,
        auto_reconnect=settings.auto_reconnect,
    )


def _clamp_interval(value: Any, fallback: int) -> int:
    try:
        interval = int(float(value))
    except (TypeError, ValueError):
        interval = fallback
    low, high = POLLING_RANGE_MS
    return max(low, min(high, interval))


def sanitize(settings: StudioSettings, defaults: StudioSettings) -> StudioSettings:
    """Coerce field types and clamp the polling interval."""
    return replace(
        settings,
        api_endpoint=str(settings.api_endpoint or defaults.api_endpoint),
        stream_endpoint=str(settings.stream_endpoint or ""),
        bot_path=str(settings.bot_path or ""),
        launch_command=str(settings.launch_command or defaults.launch_command),
        workspace_path=str(settings.workspace_path or ""),
        autostart=bool(settings.autostart),
        desktop_notifications=bool(settings.desktop_notifications),
        safe_mode=bool(settings.safe_mode),
        auto_reconnect=bool(settings.auto_reconnect),
        polling_interval_ms=_clamp_interval(
            settings.polling_interval_ms, defaults.polling_interval_ms
        ),
    )


def _from_dict(data: dict, defaults: StudioSettings) -> StudioSettings:
    known = {f.name for f in fields(StudioSettings)} - {"saved_at"}
    values: dict[str, Any] = {}
    for key in known:
        if key not in data:
            continue
        value = data[key]
        if key in _BOOL_FIELDS and not isinstance(value, bool):
            continue
        if key in _STR_FIELDS and not isinstance(value, str):
            continue
        values[key] = value
    saved_at = defaults.saved_at
    if isinstance(data.get("saved_at"), str):
        try:
            saved_at = datetime.fromisoformat(data["saved_at"])
        except ValueError:
            pass
    return replace(defaults, saved_at=saved_at, **values)


class SettingsStore:
    """Reads and writes ``StudioSettings`` as a JSON document."""

    def __init__(self, path: Path | str, defaults: StudioSettings | None = None) -> None:
        self._path = Path(path)
        self._defaults = defaults or StudioSettings()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def defaults(self) -> StudioSettings:
        return self._defaults

    def read(self) -> StudioSettings:
        """Return saved settings merged over defaults; defaults on any read failure."""
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return self._defaults
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable settings at %s: %s", self._path, exc)
            return self._defaults

        if not isinstance(data, dict):
            return self._defaults
        return sanitize(_from_dict(data, self._defaults), self._defaults)

    def save(self, settings: StudioSettings) -> StudioSettings:
        merged = replace(
            sanitize(settings, self._defaults), saved_at=datetime.now(timezone.utc)
        )
        payload = asdict(merged)
        payload["saved_at"] = merged.saved_at.isoformat()

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return merged
