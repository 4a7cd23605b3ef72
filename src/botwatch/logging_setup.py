"""Idempotent stderr logging setup."""

from __future__ import annotations

import logging
import os
import sys

_CONFIGURED = False

# httpx logs every request at INFO and websockets logs each frame at DEBUG
_NOISY_LIBRARIES = ("httpx", "httpcore", "websockets")


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.environ.get("BOTWATCH_LOG_LEVEL", logging.INFO)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.strip().upper())
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def setup_logging(level: int | str | None = None) -> None:
    """Configure botwatch logging to stderr. Safe to call multiple times."""
    global _CONFIGURED  # noqa: PLW0603
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    )

    logger = logging.getLogger("botwatch")
    logger.setLevel(_resolve_level(level))
    logger.addHandler(handler)
    logger.propagate = False

    for name in _NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    _CONFIGURED = True
