"""Operator action routing: remote backend first, local simulation as fallback."""

from __future__ import annotations

import logging
from dataclasses import replace

from botwatch.config import EndpointConfig
from botwatch.core.logfile import LocalLogFile
from botwatch.core.prober import HttpProber
from botwatch.core.state import RuntimeCache
from botwatch.models.enums import BotAction, BotStatus, LogLevel
from botwatch.models.runtime import ActionResult, Snapshot, iso_now

logger = logging.getLogger("botwatch.dispatcher")

MAX_SIMULATED_WORKERS = 8
MAX_SIMULATED_SUCCESS = 99.9


def simulate_action(snapshot: Snapshot, action: str) -> tuple[Snapshot, str, LogLevel]:
    """Apply ``action`` to ``snapshot`` locally.

    Any action is accepted from any status. Unknown names leave the counters
    untouched. Returns the new snapshot plus the log line and level
    describing what happened.
    """
    try:
        known = BotAction(action)
    except ValueError:
        known = None

    if known is BotAction.START:
        updated = replace(
            snapshot,
            status=BotStatus.RUNNING,
            active_workers=min(MAX_SIMULATED_WORKERS, snapshot.active_workers + 1),
        )
        note, level = "Bot run started by operator", LogLevel.INFO
    elif known is BotAction.PAUSE:
        updated = replace(snapshot, status=BotStatus.PAUSED)
        note, level = "Bot run paused", LogLevel.WARN
    elif known is BotAction.RESUME:
        updated = replace(snapshot, status=BotStatus.RUNNING)
        note, level = "Bot resumed", LogLevel.INFO
    elif known is BotAction.STOP:
        updated = replace(snapshot, status=BotStatus.STOPPED, active_workers=0)
        note, level = "Bot stopped by operator", LogLevel.WARN
    elif known is BotAction.SYNC:
        updated = replace(
            snapshot,
            queue_depth=max(0, snapshot.queue_depth - 2),
            jobs_processed=snapshot.jobs_processed + 3,
            success_rate=min(MAX_SIMULATED_SUCCESS, snapshot.success_rate + 0.1),
        )
        note, level = "Manual sync completed", LogLevel.INFO
    else:
        updated = snapshot
        note, level = f"Unknown action ignored: {action}", LogLevel.WARN

    return replace(updated, last_heartbeat=iso_now()), note, level


class ActionDispatcher:
    """Sends operator actions to the bot, simulating them when it cannot be reached."""

    def __init__(
        self,
        prober: HttpProber,
        cache: RuntimeCache,
        log_file: LocalLogFile | None = None,
    ) -> None:
        self._prober = prober
        self._cache = cache
        self._log_file = log_file

    async def perform_action(self, config: EndpointConfig, action: str) -> ActionResult:
        """Always resolves with ``ok=True``; degraded paths are reported in the message."""
        action = str(action or "").strip()

        outcome = await self._prober.send_action(config, action)
        if outcome.succeeded:
            if outcome.value is not None:
                snapshot = self._cache.replace_snapshot(outcome.value)
            else:
                snapshot = self._cache.touch_heartbeat()
            self._append_log(f"Action '{action}' forwarded to remote API")
            logger.info("Action '%s' accepted by %s", action, outcome.path)
            return ActionResult(
                ok=True,
                message=f"Action '{action}' sent to remote backend",
                snapshot=snapshot,
            )

        snapshot, note, level = simulate_action(self._cache.snapshot, action)
        self._cache.replace_snapshot(snapshot, remote=False)
        self._append_log(note, level)
        logger.info("Action '%s' simulated locally", action)
        return ActionResult(
            ok=True,
            message=f"Action '{action}' completed locally (remote endpoint unavailable)",
            snapshot=snapshot,
        )

    def _append_log(self, message: str, level: LogLevel = LogLevel.INFO) -> None:
        if self._log_file is not None:
            self._log_file.append(message, level)
