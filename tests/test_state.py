"""
Tests for the run registry and WebSocket fan-out.
"""
import pytest

from services.websocket_manager import WebSocketManager
from state import AppState


class FakeWebSocket:
    def __init__(self, fail=False):
        self.sent = []
        self.accepted = False
        self.fail = fail

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(data)


class TestAppState:

    def test_register_update_finish(self):
        state = AppState(max_concurrent_runs=2)
        assert state.try_register_run("a")
        state.update_run("a", generation=3, best_fitness=0.5)
        assert state.get_run("a")["generation"] == 3

        state.finish_run("a", "complete")
        assert state.get_run("a") is None
        history = state.get_history()
        assert history[0]["status"] == "complete"
        assert "finished_at" in history[0]

    def test_concurrency_cap(self):
        state = AppState(max_concurrent_runs=1)
        assert state.try_register_run("a")
        assert not state.try_register_run("b")
        state.finish_run("a", "stopped")
        assert state.try_register_run("b")

    def test_snapshots_are_copies(self):
        state = AppState()
        state.try_register_run("a")
        state.get_run("a")["status"] = "tampered"
        assert state.get_run("a")["status"] == "running"

    def test_finish_unknown_run_is_ignored(self):
        state = AppState()
        state.finish_run("ghost", "error")
        assert state.get_history() == []

    def test_full_state(self):
        state = AppState(max_concurrent_runs=3)
        state.try_register_run("a")
        full = state.get_full_state()
        assert [r["run_id"] for r in full["active"]] == ["a"]
        assert full["max_concurrent_runs"] == 3


class TestWebSocketManager:

    @pytest.mark.asyncio
    async def test_broadcast_to_subscribers_only(self):
        manager = WebSocketManager()
        subscriber, run_client = FakeWebSocket(), FakeWebSocket()
        await manager.connect(subscriber)
        await manager.connect(run_client, subscribe=False)
        assert subscriber.accepted and run_client.accepted
        assert manager.client_count == 1

        await manager.broadcast("run_status", {"run": {"runId": "a", "status": "running"}})
        assert subscriber.sent == [{"type": "run_status", "run": {"runId": "a", "status": "running"}}]
        assert run_client.sent == []

    @pytest.mark.asyncio
    async def test_failed_client_is_dropped(self):
        manager = WebSocketManager()
        broken = FakeWebSocket(fail=True)
        await manager.connect(broken)
        await manager.broadcast("run_status", {"run": {}})
        assert manager.client_count == 0

    @pytest.mark.asyncio
    async def test_progress_is_throttled(self):
        manager = WebSocketManager()
        client = FakeWebSocket()
        await manager.connect(client)
        await manager.broadcast("run_progress", {"generation": 1})
        await manager.broadcast("run_progress", {"generation": 2})
        assert [m["generation"] for m in client.sent] == [1]

    @pytest.mark.asyncio
    async def test_send_to_client_serializes(self):
        manager = WebSocketManager()
        client = FakeWebSocket()
        assert await manager.send_to_client(client, {"profitFactor": float('inf')})
        assert client.sent == [{"profitFactor": "Infinity"}]
        assert not await manager.send_to_client(FakeWebSocket(fail=True), {})
