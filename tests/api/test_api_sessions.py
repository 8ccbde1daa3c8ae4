from fastapi.testclient import TestClient

from chatcore import metrics
from chatcore.config import AggregatedConfig
from chatcore.llm import ModelInfo, ModelProvider, ModelResponse, TextBlock
from chatcore.sessions import Message
from chatdesk.api.app import create_app


class _EchoProvider(ModelProvider):
    async def complete(self, request):
        return ModelResponse(content=[TextBlock("echo")])

    def info(self):
        return ModelInfo(id="echo", provider="test")


def _client(cfg=None):
    app = create_app(cfg or AggregatedConfig(), provider=_EchoProvider(), start_monitor=False)
    return TestClient(app), app


def test_session_crud_flow():
    client, app = _client()
    r = client.post("/sessions", json={"title": "Prospects"})
    assert r.status_code == 201
    sid = r.json()["id"]
    assert r.json()["current"] is True

    r = client.patch(f"/sessions/{sid}", json={"title": "Leads"})
    assert r.json()["title"] == "Leads"

    app.state.store.append_message(sid, Message.create("user", "hi"))
    r = client.get(f"/sessions/{sid}")
    assert r.json()["messages"][0]["content"] == "hi"

    r = client.get(f"/sessions/{sid}/export")
    assert "exportedAt" in r.json()

    r = client.post(f"/sessions/{sid}/clear")
    assert r.json()["messagesCount"] == 0

    r = client.delete(f"/sessions/{sid}")
    assert r.json() == {"ok": True, "currentSessionId": None}
    assert client.get(f"/sessions/{sid}").status_code == 404
    assert client.delete(f"/sessions/{sid}").status_code == 404


def test_list_sessions_and_switch_current():
    client, _ = _client()
    a = client.post("/sessions", json={}).json()["id"]
    b = client.post("/sessions").json()["id"]
    listing = client.get("/sessions").json()
    assert listing["currentSessionId"] == b
    assert [s["id"] for s in listing["sessions"]] == [b, a]
    client.patch(f"/sessions/{a}", json={"current": True})
    assert client.get("/sessions").json()["currentSessionId"] == a


def test_rename_to_blank_is_400():
    client, _ = _client()
    sid = client.post("/sessions").json()["id"]
    assert client.patch(f"/sessions/{sid}", json={"title": "  "}).status_code == 400


def test_layout_mode_endpoint():
    client, _ = _client()
    assert client.put("/layout", json={"layout_mode": "sidebar"}).json() == {"layoutMode": "sidebar"}
    assert client.put("/layout", json={"layout_mode": "popup"}).status_code == 400


def test_quota_status_and_enforce():
    cfg = AggregatedConfig.model_validate(
        {"quota": {"limits": {"max_sessions": 3}, "policy": {"eviction_batch_size": 1}}}
    )
    client, app = _client(cfg)
    store = app.state.store
    for _ in range(5):
        store.create_session()
    status = client.get("/quota").json()
    assert status["exceeded"] is True
    assert status["usage"]["sessionsCount"] == 5
    report = client.post("/quota/enforce").json()
    assert report == {**report, "evicted": 2, "resolved": True}
    assert len(store) == 3


def test_request_metrics_use_route_templates():
    client, _ = _client()
    for _ in range(20):
        sid = client.post("/sessions").json()["id"]
        client.get(f"/sessions/{sid}")
        client.delete(f"/sessions/{sid}")
    client.get("/no/such/path")
    counters = metrics.snapshot()["counters"]
    series = sorted(k for k in counters if k.startswith("api_request_total"))
    assert series == [
        "api_request_total{method=DELETE,route=/sessions/{session_id}}",
        "api_request_total{method=GET,route=/sessions/{session_id}}",
        "api_request_total{method=GET,route=unmatched}",
        "api_request_total{method=POST,route=/sessions}",
    ]
    assert counters["api_request_total{method=GET,route=/sessions/{session_id}}"] == 20
