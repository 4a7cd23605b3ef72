"""Local environment and connectivity checks shown on the setup screen."""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import sys
from pathlib import Path

import psutil

from botwatch.core.endpoints import normalize_http_endpoint
from botwatch.models.enums import CheckStatus
from botwatch.models.runtime import ConnectionState, SetupCheckResult, StudioSettings

logger = logging.getLogger("botwatch.checks")

COMMAND_TIMEOUT = 6.0

Command = tuple[str, ...]


def python_commands() -> list[Command]:
    if sys.platform == "win32":
        return [("python", "--version"), ("py", "--version")]
    return [("python3", "--version"), ("python", "--version")]


async def run_command(command: Command, timeout: float = COMMAND_TIMEOUT) -> tuple[bool, str]:
    """Run a short command; returns (succeeded, first non-empty output)."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        return False, str(exc)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return False, f"{command[0]} timed out after {timeout:.0f}s"

    out = stdout.decode(errors="replace").strip()
    err = stderr.decode(errors="replace").strip()
    if proc.returncode != 0:
        return False, err or f"{command[0]} exited with {proc.returncode}"
    return True, out or err


async def run_version_check(name: str, commands: list[Command]) -> SetupCheckResult:
    """Pass on the first command that succeeds."""
    for command in commands:
        ok, output = await run_command(command)
        if ok:
            return SetupCheckResult(
                name=name,
                status=CheckStatus.PASS,
                detail=output or f"{command[0]} detected",
            )
        logger.debug("%s: %s failed: %s", name, command[0], output)

    return SetupCheckResult(
        name=name,
        status=CheckStatus.FAIL,
        detail=f"{commands[0][0]} not available on this system",
    )


def check_launch_command(launch_command: str) -> SetupCheckResult:
    name = "Launch command"
    try:
        parts = shlex.split(launch_command)
    except ValueError as exc:
        return SetupCheckResult(name, CheckStatus.FAIL, f"Cannot parse launch command: {exc}")

    if not parts:
        return SetupCheckResult(name, CheckStatus.WARNING, "No launch command configured")

    resolved = shutil.which(parts[0])
    if resolved:
        return SetupCheckResult(name, CheckStatus.PASS, f"{parts[0]} resolves to {resolved}")
    return SetupCheckResult(name, CheckStatus.FAIL, f"{parts[0]} not found on PATH")


def check_bot_path(bot_path: str) -> SetupCheckResult:
    name = "Bot project path"
    if not bot_path.strip():
        return SetupCheckResult(
            name, CheckStatus.WARNING, "Set a bot path to validate your local source folder"
        )
    if os.path.exists(bot_path) and os.access(bot_path, os.R_OK):
        return SetupCheckResult(name, CheckStatus.PASS, f"{bot_path} is readable")
    return SetupCheckResult(name, CheckStatus.FAIL, f"{bot_path} cannot be accessed")


def _refers_to(proc_info: dict, bot_path: Path) -> bool:
    cwd = proc_info.get("cwd")
    if cwd and Path(cwd) == bot_path:
        return True
    cmdline = proc_info.get("cmdline") or []
    target = str(bot_path)
    return any(target in part for part in cmdline)


def find_bot_process(bot_path: str) -> int | None:
    """PID of a process running from, or pointing at, ``bot_path``."""
    target = Path(bot_path).expanduser()
    try:
        target = target.resolve()
    except OSError:
        pass

    for proc in psutil.process_iter(["pid", "cwd", "cmdline"]):
        try:
            if _refers_to(proc.info, target):
                return proc.info["pid"]
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return None


def check_bot_process(bot_path: str) -> SetupCheckResult:
    name = "Bot process"
    if not bot_path.strip():
        return SetupCheckResult(name, CheckStatus.WARNING, "No bot path to look for")

    try:
        pid = find_bot_process(bot_path)
    except (psutil.Error, OSError) as exc:
        logger.debug("Process scan failed", exc_info=True)
        return SetupCheckResult(name, CheckStatus.WARNING, f"Cannot scan processes: {exc}")

    if pid is not None:
        return SetupCheckResult(name, CheckStatus.PASS, f"Running as PID {pid}")
    return SetupCheckResult(name, CheckStatus.WARNING, f"No running process found for {bot_path}")


def check_api(settings: StudioSettings, connection: ConnectionState) -> SetupCheckResult:
    name = "Bot API endpoint"
    if not normalize_http_endpoint(settings.api_endpoint):
        return SetupCheckResult(
            name, CheckStatus.WARNING, "Set API endpoint to enable real backend connectivity"
        )
    if connection.api_reachable:
        latency = connection.api_latency_ms if connection.api_latency_ms is not None else "?"
        return SetupCheckResult(
            name,
            CheckStatus.PASS,
            f"Connected in {latency} ms ({connection.api_endpoint})",
        )
    return SetupCheckResult(
        name,
        CheckStatus.FAIL,
        connection.last_error or f"Unable to reach {connection.api_endpoint}",
    )


def check_stream(settings: StudioSettings, connection: ConnectionState) -> SetupCheckResult:
    name = "Stream"
    if connection.stream_connected:
        return SetupCheckResult(
            name, CheckStatus.PASS, f"Connected to {connection.stream_endpoint}"
        )
    suffix = ", auto-reconnect enabled" if settings.auto_reconnect else ""
    return SetupCheckResult(
        name, CheckStatus.WARNING, f"Not connected (will use HTTP polling{suffix})"
    )


async def local_checks(settings: StudioSettings, bot_path: str) -> list[SetupCheckResult]:
    """Checks that only look at this machine."""
    versions = await asyncio.gather(
        run_version_check("Python runtime", python_commands()),
        run_version_check("Git", [("git", "--version")]),
    )
    return [
        *versions,
        check_launch_command(settings.launch_command),
        check_bot_path(bot_path),
        check_bot_process(bot_path),
    ]
