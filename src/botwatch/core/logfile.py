"""Append-only local log file: event sink and fallback log source."""

from __future__ import annotations

import logging
from pathlib import Path

from botwatch.core.reconciler import format_log_line
from botwatch.models.enums import LogLevel

logger = logging.getLogger("botwatch.logfile")

SEED_LINES = (
    "[BOOT] Console session initialized",
    "[SYNC] Scheduler synced with 4 worker slots",
    "[QUEUE] Imported 18 tasks from latest profile",
    "[HEALTH] Last heartbeat within threshold",
)

# Upper bound on bytes read per requested line when tailing.
_MAX_LINE_BYTES = 4096


def _tail_file(path: Path, num_lines: int) -> list[str]:
    """Read the last N non-empty lines from a file efficiently."""
    try:
        with open(path, "rb") as f:
            f.seek(0, 2)
            size = f.tell()
            if size == 0:
                return []

            chunk_size = min(_MAX_LINE_BYTES * num_lines, size)
            f.seek(size - chunk_size)
            data = f.read().decode("utf-8", errors="replace")
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return []

    lines = data.splitlines()
    if size > chunk_size and lines:
        lines = lines[1:]  # first line may be partial
    return [line for line in lines if line.strip()][-num_lines:]


class LocalLogFile:
    """The console's own operator-facing log at ``.botwatch/studio-runtime.log``."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure(self) -> None:
        """Create the file with seed lines if it does not exist yet."""
        if self._path.is_file():
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            seeded = "\n".join(format_log_line(line) for line in SEED_LINES)
            self._path.write_text(f"{seeded}\n", encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot create log file %s: %s", self._path, exc)

    def append(self, message: str, level: LogLevel | str = LogLevel.INFO) -> str:
        """Append one formatted line and return it."""
        line = format_log_line(message, level)
        self.ensure()
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(f"{line}\n")
        except OSError as exc:
            logger.warning("Cannot append to %s: %s", self._path, exc)
        return line

    def tail(self, limit: int = 250) -> list[str]:
        if limit <= 0:
            return []
        self.ensure()
        return _tail_file(self._path, limit)
