"""
Tests for the HTTP routes and the /ws/optimize run protocol.
"""
import pytest
from fastapi.testclient import TestClient

from conftest import to_records
from main import app

ALWAYS_STRATEGY = {
    "mode": "Signals",
    "entries": {"entry1": ["Utility.Always"]},
    "profitTarget": 5,
    "stopLoss": 5,
}


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def receive_until_terminal(websocket, limit=10000):
    messages = []
    for _ in range(limit):
        message = websocket.receive_json()
        messages.append(message)
        if message["type"] in ("complete", "stopped", "error"):
            return messages
    raise AssertionError("no terminal message received")


class TestSystemRoutes:

    def test_ping(self, client):
        assert client.get("/api/ping").json()["pong"] is True

    def test_health(self, client):
        assert client.get("/api/health").json()["status"] == "healthy"

    def test_system(self, client):
        data = client.get("/api/system").json()
        assert data["cpu_cores"] >= 1
        assert data["running_optimizations"] == 0

    def test_runs(self, client):
        data = client.get("/api/runs").json()
        assert data["active"] == [] and data["history"] == []
        assert client.get("/api/runs/missing").status_code == 404


class TestSignalRoutes:

    def test_catalog(self, client):
        data = client.get("/api/signals").json()
        assert data["count"] == 88
        assert "Doji" in data["namespaces"]["CandlestickPatterns"]
        assert "Always" in data["namespaces"]["Utility"]

    def test_searchable_only(self, client):
        data = client.get("/api/signals", params={"searchable_only": True}).json()
        assert "Utility" not in data["namespaces"]


class TestBacktestRoute:

    def test_backtest(self, client, rising_bars):
        response = client.post("/api/backtest", json={"bars": to_records(rising_bars), "strategy": ALWAYS_STRATEGY})
        assert response.status_code == 200
        data = response.json()
        assert data["totalTrades"] == 1
        assert data["netProfit"] == pytest.approx(5.0)
        assert data["profitFactor"] == "Infinity"
        assert data["trades"][0]["exitReason"] == "Take profit"

    def test_without_trades(self, client, rising_bars):
        response = client.post("/api/backtest", json={
            "bars": to_records(rising_bars), "strategy": ALWAYS_STRATEGY, "includeTrades": False})
        assert "trades" not in response.json()

    def test_empty_bars(self, client):
        response = client.post("/api/backtest", json={"bars": [], "strategy": ALWAYS_STRATEGY})
        assert response.status_code == 400

    def test_unknown_signal(self, client, rising_bars):
        strategy = dict(ALWAYS_STRATEGY, entries={"entry1": ["CandlestickPatterns.Unicorn"]})
        response = client.post("/api/backtest", json={"bars": to_records(rising_bars), "strategy": strategy})
        assert response.status_code == 400
        assert "Unicorn" in response.json()["detail"]


class TestSettingsRoutes:

    def test_defaults(self, client):
        data = client.get("/api/settings/defaults").json()
        assert data["populationSize"] == 10
        assert data["exits"]["fixedTarget"]["minTicks"] == 10

    def test_validate(self, client, settings_payload):
        assert client.post("/api/settings/validate", json=settings_payload).json()["populationSize"] == 6
        assert client.post("/api/settings/validate", json={"populationSize": 6}).status_code == 400


class TestExportRoute:

    def test_ninjascript(self, client):
        response = client.post("/api/export/ninjascript", json={
            "strategy": ALWAYS_STRATEGY, "strategyName": "My Strategy!", "tradeDirection": "Long"})
        data = response.json()
        assert data["strategyName"] == "MyStrategy"
        assert data["fileName"] == "MyStrategy.cs"
        assert "public class MyStrategy : Strategy" in data["ninjascript"]

    def test_bad_direction(self, client):
        response = client.post("/api/export/ninjascript", json={
            "strategy": ALWAYS_STRATEGY, "tradeDirection": "Sideways"})
        assert response.status_code == 400


class TestOptimizeSocket:

    def test_complete_run(self, client, sample_ohlcv_data, settings_payload):
        with client.websocket_connect("/ws/optimize") as websocket:
            websocket.send_json({"bars": to_records(sample_ohlcv_data), "settings": settings_payload})
            messages = receive_until_terminal(websocket)

        assert messages[-1]["type"] == "complete"
        assert all(m["type"] == "progress" for m in messages[:-1])
        complete = messages[-1]
        assert "fitness" in complete["bestIndividual"]
        assert len(complete["walkForwardReport"]) == 3
        assert "maxDrawdown" in complete["monteCarloReport"]["confidenceIntervals"]

    def test_stop_command(self, client, sample_ohlcv_data, settings_payload):
        settings_payload.update({"populationSize": 200, "generations": 50})
        with client.websocket_connect("/ws/optimize") as websocket:
            websocket.send_json({"command": "start", "bars": to_records(sample_ohlcv_data),
                                 "settings": settings_payload})
            first = websocket.receive_json()
            assert first["type"] == "progress"
            websocket.send_json({"command": "stop"})
            messages = receive_until_terminal(websocket)

        assert messages[-1]["type"] == "stopped"

    def test_connection_errors_leave_run_cancellable(self, client, sample_ohlcv_data, settings_payload):
        settings_payload.update({"populationSize": 200, "generations": 50})
        start = {"command": "start", "bars": to_records(sample_ohlcv_data), "settings": settings_payload}
        with client.websocket_connect("/ws/optimize") as websocket:
            websocket.send_json(start)
            assert websocket.receive_json()["type"] == "progress"

            websocket.send_json({"command": "bogus"})
            websocket.send_json(start)
            errors = []
            while len(errors) < 2:
                message = websocket.receive_json()
                assert message["type"] in ("progress", "error")
                if message["type"] == "error":
                    errors.append(message["message"])

            websocket.send_json({"command": "stop"})
            messages = receive_until_terminal(websocket)

        assert "Unknown command" in errors[0]
        assert "already in progress" in errors[1]
        assert messages[-1]["type"] == "stopped"
        assert all(m["type"] == "progress" for m in messages[:-1])


    def test_invalid_settings(self, client, sample_ohlcv_data):
        with client.websocket_connect("/ws/optimize") as websocket:
            websocket.send_json({"bars": to_records(sample_ohlcv_data), "settings": {"populationSize": 4}})
            messages = receive_until_terminal(websocket)
        assert [m["type"] for m in messages] == ["error"]

    def test_malformed_message(self, client):
        with client.websocket_connect("/ws/optimize") as websocket:
            websocket.send_text("not json")
            assert websocket.receive_json()["type"] == "error"
            websocket.send_json({"command": "dance"})
            assert "Unknown command" in websocket.receive_json()["message"]


class TestStatusSocket:

    def test_full_state_on_connect(self, client):
        with client.websocket_connect("/ws/status") as websocket:
            message = websocket.receive_json()
            assert message["type"] == "full_state"
            websocket.send_text("ping")
            assert websocket.receive_text() == "pong"
