"""Tests for the stream session lifecycle and reconnect scheduling."""

import asyncio
from unittest.mock import patch

import pytest

from botwatch.config import EndpointConfig, StreamConfig
from botwatch.core.logfile import LocalLogFile
from botwatch.core.session import NOT_CONFIGURED, StreamSessionManager, reconnect_delay_ms
from botwatch.core.state import ConnectionStateStore, RuntimeCache
from botwatch.models.enums import BotStatus, ConnectionMode, StreamPhase

from fakes import FakeConnector, settle

# Short waits so reconnect tests finish quickly.
FAST = StreamConfig(connect_wait=0.5, reconnect_wait=0.5, min_reconnect_ms=10, max_reconnect_ms=50)
ENDPOINT = EndpointConfig(api_endpoint="http://127.0.0.1:5050", polling_interval_ms=10)
NO_RECONNECT = EndpointConfig(api_endpoint="http://127.0.0.1:5050", auto_reconnect=False)


def _run(scenario, connector=None, tmp_path=None, config=FAST, config_source=None):
    state = ConnectionStateStore()
    cache = RuntimeCache()
    connector = connector or FakeConnector()
    log_file = LocalLogFile(tmp_path / "run.log") if tmp_path else None

    async def main():
        manager = StreamSessionManager(
            state,
            cache,
            config,
            log_file=log_file,
            connector=connector,
            config_source=config_source,
        )
        try:
            return await scenario(manager, connector, state, cache)
        finally:
            await manager.aclose()

    return asyncio.run(main())


class TestReconnectDelay:
    @pytest.mark.parametrize(
        "interval, expected",
        [(500, 2000), (2000, 2000), (5000, 5000), (30000, 30000), (60000, 30000)],
    )
    def test_clamped(self, interval, expected):
        assert reconnect_delay_ms(EndpointConfig(polling_interval_ms=interval)) == expected

    def test_garbage_interval_uses_default(self):
        config = EndpointConfig(polling_interval_ms="soon")  # type: ignore[arg-type]
        assert reconnect_delay_ms(config) == 5000

    def test_custom_bounds(self):
        assert reconnect_delay_ms(EndpointConfig(polling_interval_ms=1), 10, 50) == 10


class TestConnect:
    def test_unconfigured_endpoint(self):
        connector = FakeConnector()

        async def scenario(manager, connector, state, cache):
            return await manager.connect(EndpointConfig(api_endpoint="", stream_endpoint=""))

        state = _run(scenario, connector)
        assert connector.urls == []
        assert state.stream_connected is False
        assert state.stream_endpoint == ""
        assert state.last_error == NOT_CONFIGURED

    def test_connect_success(self, tmp_path):
        async def scenario(manager, connector, state, cache):
            result = await manager.connect(ENDPOINT)
            return result, manager.phase, connector.urls

        state, phase, urls = _run(scenario, tmp_path=tmp_path)
        assert urls == ["ws://127.0.0.1:5050/ws"]
        assert state.stream_connected is True
        assert state.mode is ConnectionMode.REMOTE
        assert state.stream_endpoint == "ws://127.0.0.1:5050/ws"
        assert state.last_event_at is not None
        assert phase is StreamPhase.CONNECTED
        assert "Stream connected: ws://127.0.0.1:5050/ws" in (tmp_path / "run.log").read_text()

    def test_explicit_stream_endpoint(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(EndpointConfig(stream_endpoint="wss://events.example/feed"))
            return connector.urls

        assert _run(scenario) == ["wss://events.example/feed"]

    def test_connector_failure(self):
        connector = FakeConnector(error=OSError("connection refused"))

        async def scenario(manager, connector, state, cache):
            result = await manager.connect(NO_RECONNECT)
            return result, manager.phase, manager.reconnect_scheduled

        state, phase, scheduled = _run(scenario, connector)
        assert state.stream_connected is False
        assert state.last_error == "connection refused"
        assert phase is StreamPhase.DISCONNECTED
        assert scheduled is False

    def test_connector_failure_schedules_retry(self):
        connector = FakeConnector(error=OSError("connection refused"))

        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            scheduled = manager.reconnect_scheduled
            await asyncio.sleep(0.1)
            return scheduled, len(connector.urls)

        scheduled, attempts = _run(scenario, connector)
        assert scheduled is True
        assert attempts >= 2

    def test_handshake_timeout_returns_pending(self):
        connector = FakeConnector(hang=True)
        config = StreamConfig(connect_wait=0.05)

        async def scenario(manager, connector, state, cache):
            result = await manager.connect(ENDPOINT)
            return result, manager.phase

        state, phase = _run(scenario, connector, config=config)
        assert state.stream_connected is False
        assert phase is StreamPhase.CONNECTING

    def test_reconnect_closes_previous_session(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            first = connector.latest
            await manager.connect(ENDPOINT)
            first.push("late line from old socket")
            await settle()
            return first, cache.logs(), state.current

        first, logs, state = _run(scenario)
        assert first.closed is True
        assert logs == []
        assert state.stream_connected is True


class TestMessages:
    def test_text_message_becomes_remote_log(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            before = cache.snapshot
            connector.latest.push("job finished")
            await settle()
            return before, cache.snapshot, cache.logs(), state.current

        before, after, logs, state = _run(scenario)
        assert after is before
        assert len(logs) == 1
        assert "] [REMOTE] job finished" in logs[0]
        assert state.api_reachable is True

    def test_json_snapshot_message(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.push_json({"snapshot": {"status": "busy", "queueDepth": 7}})
            await settle()
            return cache.snapshot, cache.remote_snapshot

        snap, remote = _run(scenario)
        assert snap.status is BotStatus.RUNNING
        assert snap.queue_depth == 7
        assert remote is snap

    def test_json_log_message(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.push_json({"logs": ["a", {"message": "b", "level": "error"}]})
            await settle()
            return cache.logs()

        logs = _run(scenario)
        assert logs[0].endswith("[REMOTE] a")
        assert logs[1].endswith("[ERROR] b")

    def test_binary_message(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.push(b'{"activeWorkers": 3}')
            await settle()
            return cache.snapshot

        assert _run(scenario).active_workers == 3

    def test_message_clears_error_and_stamps_event(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            state.update(last_error="stale", last_event_at=None)
            connector.latest.push("tick")
            await settle()
            return state.current

        state = _run(scenario)
        assert state.last_error is None
        assert state.last_event_at is not None

    def test_huge_integer_frame_is_clamped(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.push('{"queueDepth": 1' + "0" * 400 + "}")
            connector.latest.push("job finished")
            await settle()
            return cache.snapshot, cache.logs(), state.current

        snap, logs, state = _run(scenario)
        assert snap.queue_depth == 10_000
        assert logs[-1].endswith("[REMOTE] job finished")
        assert state.stream_connected is True

    @patch("botwatch.core.session.normalize_snapshot", side_effect=RuntimeError("bad frame"))
    def test_unprocessable_frame_is_skipped(self, mock_normalize):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.push_json({"status": "running"})
            connector.latest.push("job finished")
            await settle()
            return manager.phase, cache.logs(), state.current

        phase, logs, state = _run(scenario)
        mock_normalize.assert_called_once()
        assert phase is StreamPhase.CONNECTED
        assert len(logs) == 1
        assert logs[0].endswith("[REMOTE] job finished")
        assert state.stream_connected is True


class TestCloseAndReconnect:
    def test_remote_close_schedules_reconnect(self, tmp_path):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.drop()
            await settle()
            scheduled = manager.reconnect_scheduled
            dropped_state = state.current
            await asyncio.sleep(0.1)
            return scheduled, dropped_state, len(connector.sockets), state.current

        scheduled, dropped, sockets, final = _run(scenario, tmp_path=tmp_path)
        assert scheduled is True
        assert dropped.stream_connected is False
        assert sockets == 2
        assert final.stream_connected is True
        assert "[WARN] Stream disconnected" in (tmp_path / "run.log").read_text()

    def test_no_reconnect_when_disabled(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(NO_RECONNECT)
            connector.latest.drop()
            await settle()
            return manager.reconnect_scheduled, manager.phase

        scheduled, phase = _run(scenario)
        assert scheduled is False
        assert phase is StreamPhase.DISCONNECTED

    def test_unexpected_read_failure_still_closes(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.fail(RuntimeError("reader crashed"))
            await settle()
            return manager.phase, manager.reconnect_scheduled, state.current

        phase, scheduled, state = _run(scenario)
        assert phase is StreamPhase.DISCONNECTED
        assert scheduled is True
        assert state.stream_connected is False

    def test_latest_config_decides_reconnect(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.drop()
            await settle()
            return manager.reconnect_scheduled

        assert _run(scenario, config_source=lambda: NO_RECONNECT) is False

    def test_manual_disconnect_suppresses_reconnect(self, tmp_path):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            ws = connector.latest
            result = await manager.disconnect()
            ws.drop()
            await asyncio.sleep(0.1)
            return result, ws, manager.reconnect_scheduled, len(connector.sockets)

        state, ws, scheduled, sockets = _run(scenario, tmp_path=tmp_path)
        assert state.stream_connected is False
        assert ws.closed is True
        assert scheduled is False
        assert sockets == 1
        assert "Stream manually disconnected by operator" in (tmp_path / "run.log").read_text()

    def test_disconnect_cancels_pending_reconnect(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.drop()
            await settle()
            pending = manager.reconnect_scheduled
            await manager.disconnect()
            await asyncio.sleep(0.1)
            return pending, manager.reconnect_scheduled, len(connector.sockets)

        pending, scheduled, sockets = _run(scenario)
        assert pending is True
        assert scheduled is False
        assert sockets == 1

    def test_explicit_connect_clears_manual_flag(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            await manager.disconnect()
            flagged = manager.manual_disconnect
            await manager.connect(ENDPOINT)
            return flagged, manager.manual_disconnect, state.current

        flagged, cleared, state = _run(scenario)
        assert flagged is True
        assert cleared is False
        assert state.stream_connected is True

    def test_connect_replaces_pending_reconnect(self):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            connector.latest.drop()
            await settle()
            await manager.connect(NO_RECONNECT)
            scheduled = manager.reconnect_scheduled
            await asyncio.sleep(0.1)
            return scheduled, len(connector.sockets)

        scheduled, sockets = _run(scenario)
        assert scheduled is False
        assert sockets == 2

    def test_aclose_is_quiet(self, tmp_path):
        async def scenario(manager, connector, state, cache):
            await manager.connect(ENDPOINT)
            await manager.aclose()
            return state.current, connector.latest.closed

        state, closed = _run(scenario, tmp_path=tmp_path)
        assert state.stream_connected is False
        assert closed is True
        assert "manually disconnected" not in (tmp_path / "run.log").read_text()
