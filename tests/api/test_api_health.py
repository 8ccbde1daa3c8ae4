from fastapi.testclient import TestClient

from chatcore.config import AggregatedConfig
from chatcore.llm import ModelInfo, ModelProvider, ModelResponse, TextBlock
from chatdesk.api.app import create_app


class _EchoProvider(ModelProvider):
    async def complete(self, request):
        return ModelResponse(content=[TextBlock("echo")])

    def info(self):
        return ModelInfo(id="echo", provider="test")


def _client(cfg=None) -> TestClient:
    return TestClient(create_app(cfg or AggregatedConfig(), provider=_EchoProvider()))


def test_api_health_ok():
    r = _client().get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_api_config_exposes_limits_not_secrets():
    r = _client().get("/config")
    assert r.status_code == 200
    data = r.json()
    assert data["model"] == "claude-sonnet-4-20250514"
    assert data["limits"]["max_sessions"] == 10
    assert "api_key" not in str(data).lower()


def test_api_metrics_snapshot_counts_requests():
    client = _client()
    client.get("/health")
    r = client.get("/metrics")
    assert r.status_code == 200
    counters = r.json()["counters"]
    assert counters["api_request_total{method=GET,route=/health}"] >= 1


def test_api_metrics_can_be_disabled():
    cfg = AggregatedConfig.model_validate({"metrics": {"expose_endpoint": False}})
    assert _client(cfg).get("/metrics").status_code == 404


def test_lifespan_starts_and_stops_monitor():
    app = create_app(AggregatedConfig(), provider=_EchoProvider())
    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert app.state.monitor._thread is not None
    assert app.state.monitor._thread is None


def test_turn_timeout_wired_from_config():
    cfg = AggregatedConfig.model_validate({"llm": {"turn_timeout_s": 7.5}})
    app = create_app(cfg, provider=_EchoProvider(), start_monitor=False)
    assert app.state.chat_service.turn_timeout_s == 7.5
