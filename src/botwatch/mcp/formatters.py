"""Markdown formatters for LLM-friendly output."""

from __future__ import annotations

from datetime import datetime

from botwatch.models.enums import CheckStatus
from botwatch.models.runtime import (
    ActionResult,
    AppMeta,
    ConnectionState,
    SetupCheckResult,
    Snapshot,
)

_CHECK_MARKS = {
    CheckStatus.PASS: "PASS",
    CheckStatus.FAIL: "FAIL",
    CheckStatus.WARNING: "WARN",
}


def _when(value: datetime | None) -> str:
    return value.isoformat() if value else "never"


def format_connection(state: ConnectionState) -> str:
    """Format the connection state as a markdown table."""
    latency = f"{state.api_latency_ms} ms" if state.api_latency_ms is not None else "—"
    lines = [
        f"## Connection: {state.mode.value}",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| API endpoint | {state.api_endpoint or '—'} |",
        f"| API reachable | {'yes' if state.api_reachable else 'no'} |",
        f"| Latency | {latency} |",
        f"| Stream endpoint | {state.stream_endpoint or '—'} |",
        f"| Stream connected | {'yes' if state.stream_connected else 'no'} |",
        f"| Last check | {_when(state.last_check)} |",
        f"| Last event | {_when(state.last_event_at)} |",
    ]
    if state.last_error:
        lines.extend(["", f"**Last error:** {state.last_error}"])
    return "\n".join(lines)


def format_snapshot(snap: Snapshot) -> str:
    """Format a bot snapshot as markdown."""
    return "\n".join([
        f"## Bot: {snap.status.value}",
        f"**Heartbeat:** {snap.last_heartbeat}  ",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Queue depth | {snap.queue_depth} |",
        f"| Jobs processed | {snap.jobs_processed} |",
        f"| Success rate | {snap.success_rate:.1f}% |",
        f"| Active workers | {snap.active_workers} |",
    ])


def format_action_result(result: ActionResult) -> str:
    return f"**{result.message}**\n\n" + format_snapshot(result.snapshot)


def format_logs(lines: list[str], title: str = "Logs") -> str:
    """Format log lines as a fenced block."""
    if not lines:
        return f"## {title}\n\nNo log entries."
    body = "\n".join(lines)
    return f"## {title} ({len(lines)})\n\n```\n{body}\n```"


def format_checks(results: list[SetupCheckResult]) -> str:
    if not results:
        return "No checks ran."
    lines = [
        "## Setup checks",
        "",
        "| Check | Status | Detail |",
        "|-------|--------|--------|",
    ]
    for r in results:
        lines.append(f"| {r.name} | {_CHECK_MARKS[r.status]} | {r.detail} |")
    return "\n".join(lines)


def format_meta(meta: AppMeta) -> str:
    return (
        f"botwatch {meta.app_version} on {meta.platform} "
        f"(Python {meta.python_version}, httpx {meta.httpx_version}, "
        f"websockets {meta.websockets_version})"
    )
