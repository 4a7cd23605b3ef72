"""Tests for setup checks (mocked psutil and subprocesses)."""

import asyncio
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import psutil

from botwatch.core.checks import (
    check_api,
    check_bot_path,
    check_bot_process,
    check_launch_command,
    check_stream,
    find_bot_process,
    local_checks,
    run_command,
    run_version_check,
)
from botwatch.models.enums import CheckStatus
from botwatch.models.runtime import ConnectionState, SetupCheckResult, StudioSettings


def _proc(pid, cwd=None, cmdline=None):
    proc = MagicMock()
    proc.info = {"pid": pid, "cwd": cwd, "cmdline": cmdline or []}
    return proc


class TestRunCommand:
    def test_success(self):
        ok, output = asyncio.run(run_command((sys.executable, "--version")))
        assert ok is True
        assert "Python" in output

    def test_missing_binary(self):
        ok, output = asyncio.run(run_command(("definitely-not-a-real-binary-xyz",)))
        assert ok is False
        assert output

    def test_nonzero_exit(self):
        ok, _ = asyncio.run(run_command((sys.executable, "-c", "import sys; sys.exit(3)")))
        assert ok is False


class TestRunVersionCheck:
    @patch("botwatch.core.checks.run_command", new_callable=AsyncMock)
    def test_second_command_passes(self, mock_run):
        mock_run.side_effect = [(False, "not found"), (True, "Python 3.12.1")]
        result = asyncio.run(run_version_check("Python runtime", [("python3",), ("python",)]))
        assert result.status is CheckStatus.PASS
        assert result.detail == "Python 3.12.1"

    @patch("botwatch.core.checks.run_command", new_callable=AsyncMock)
    def test_all_fail(self, mock_run):
        mock_run.return_value = (False, "not found")
        result = asyncio.run(run_version_check("Git", [("git", "--version")]))
        assert result.status is CheckStatus.FAIL
        assert result.detail == "git not available on this system"

    @patch("botwatch.core.checks.run_command", new_callable=AsyncMock)
    def test_empty_output_still_passes(self, mock_run):
        mock_run.return_value = (True, "")
        result = asyncio.run(run_version_check("Git", [("git", "--version")]))
        assert result.detail == "git detected"


class TestLaunchCommand:
    @patch("botwatch.core.checks.shutil.which", return_value="/usr/bin/python3")
    def test_resolves(self, _which):
        result = check_launch_command("python3 main.py")
        assert result.status is CheckStatus.PASS
        assert "/usr/bin/python3" in result.detail

    @patch("botwatch.core.checks.shutil.which", return_value=None)
    def test_not_on_path(self, _which):
        assert check_launch_command("botrunner --fast").status is CheckStatus.FAIL

    def test_unparsable(self):
        assert check_launch_command('python3 "main.py').status is CheckStatus.FAIL

    def test_empty(self):
        assert check_launch_command("   ").status is CheckStatus.WARNING


class TestBotPath:
    def test_empty(self):
        assert check_bot_path("").status is CheckStatus.WARNING

    def test_readable(self, tmp_path):
        result = check_bot_path(str(tmp_path))
        assert result.status is CheckStatus.PASS
        assert result.name == "Bot project path"

    def test_missing(self, tmp_path):
        assert check_bot_path(str(tmp_path / "nope")).status is CheckStatus.FAIL


class TestBotProcess:
    @patch("botwatch.core.checks.psutil.process_iter")
    def test_found_by_cwd(self, mock_iter, tmp_path):
        mock_iter.return_value = [
            _proc(10, cwd="/elsewhere"),
            _proc(42, cwd=str(tmp_path.resolve())),
        ]
        assert find_bot_process(str(tmp_path)) == 42

    @patch("botwatch.core.checks.psutil.process_iter")
    def test_found_by_cmdline(self, mock_iter, tmp_path):
        mock_iter.return_value = [_proc(7, cmdline=["python3", f"{tmp_path.resolve()}/main.py"])]
        result = check_bot_process(str(tmp_path))
        assert result.status is CheckStatus.PASS
        assert "PID 7" in result.detail

    @patch("botwatch.core.checks.psutil.process_iter")
    def test_not_running(self, mock_iter, tmp_path):
        mock_iter.return_value = [_proc(10, cwd="/elsewhere")]
        assert check_bot_process(str(tmp_path)).status is CheckStatus.WARNING

    @patch("botwatch.core.checks.psutil.process_iter")
    def test_scan_failure(self, mock_iter, tmp_path):
        mock_iter.side_effect = psutil.AccessDenied(1)
        result = check_bot_process(str(tmp_path))
        assert result.status is CheckStatus.WARNING
        assert "Cannot scan processes" in result.detail

    def test_no_path(self):
        assert check_bot_process("").status is CheckStatus.WARNING


class TestConnectivityChecks:
    def test_api_unconfigured(self):
        result = check_api(StudioSettings(api_endpoint="   "), ConnectionState())
        assert result.status is CheckStatus.WARNING

    def test_api_reachable(self):
        state = ConnectionState(api_reachable=True, api_latency_ms=12, api_endpoint="http://h")
        result = check_api(StudioSettings(), state)
        assert result.status is CheckStatus.PASS
        assert result.detail == "Connected in 12 ms (http://h)"

    def test_api_unreachable_reports_error(self):
        state = ConnectionState(api_endpoint="http://h", last_error="timed out")
        result = check_api(StudioSettings(), state)
        assert result.status is CheckStatus.FAIL
        assert result.detail == "timed out"

    def test_stream_connected(self):
        state = ConnectionState(stream_connected=True, stream_endpoint="ws://h/ws")
        assert check_stream(StudioSettings(), state).status is CheckStatus.PASS

    def test_stream_down_mentions_reconnect(self):
        result = check_stream(StudioSettings(auto_reconnect=True), ConnectionState())
        assert result.status is CheckStatus.WARNING
        assert "auto-reconnect" in result.detail


class TestLocalChecks:
    @patch("botwatch.core.checks.check_bot_process")
    @patch("botwatch.core.checks.run_version_check", new_callable=AsyncMock)
    def test_collects_all(self, mock_version, mock_process, tmp_path):
        mock_version.side_effect = lambda name, _cmds: SetupCheckResult(
            name, CheckStatus.PASS, "ok"
        )
        mock_process.return_value = SetupCheckResult("Bot process", CheckStatus.WARNING, "-")
        results = asyncio.run(local_checks(StudioSettings(), str(tmp_path)))
        assert [r.name for r in results] == [
            "Python runtime",
            "Git",
            "Launch command",
            "Bot project path",
            "Bot process",
        ]
