from chatcore import metrics
from chatcore.eventbus import EventBus, emit, subscribe
from chatcore.events import SessionCreated, emit as emit_event, on


def test_eventbus_basic_dispatch():
    got = []
    unsub = subscribe("TestEvent", lambda p: got.append(p["value"]))
    subscribe("TestEvent", lambda p: got.append(p["value"] * 2))
    emit("TestEvent", {"value": 3})
    assert sorted(got) == [3, 6]
    unsub()
    emit("TestEvent", {"value": 1})
    assert sorted(got) == [2, 3, 6]
    snap = metrics.snapshot()["counters"]
    assert any("events_emitted_total" in k for k in snap)


def test_eventbus_handler_isolation():
    bus = EventBus()
    calls = []

    def bad(_):
        calls.append("bad")
        raise RuntimeError("boom")

    bus.subscribe("IsoEvent", bad)
    bus.subscribe("IsoEvent", lambda _: calls.append("good"))
    bus.emit("IsoEvent", {})
    assert calls == ["bad", "good"]
    counters = metrics.snapshot()["counters"]
    assert counters["handler_exceptions_total{event=IsoEvent}"] == 1


def test_wildcard_subscriber_sees_event_name():
    bus = EventBus()
    seen = []
    bus.subscribe("*", lambda p: seen.append(p["event"]))
    bus.emit("A", {})
    bus.emit("B", {})
    assert seen == ["A", "B"]


def test_typed_event_reaches_private_bus_and_any_subscribers():
    bus = EventBus()
    on_bus, on_any = [], []
    bus.subscribe("SessionCreated", on_bus.append)
    on(lambda name, payload: on_any.append(name))
    emit_event(SessionCreated(session_id="s1", title="New chat"), bus=bus)
    assert on_bus[0]["session_id"] == "s1"
    assert "ts" in on_bus[0]
    assert on_any == ["SessionCreated"]
    assert metrics.snapshot()["counters"]["sessions_created_total"] == 1


def test_emit_reports_failures_and_times_dispatch():
    bus = EventBus()
    bus.subscribe("Timed", lambda _: None)
    bus.subscribe("Timed", lambda _: 1 / 0)
    assert bus.emit("Timed", {}) == 1
    assert bus.handler_count("Timed") == 2
    hist = metrics.snapshot()["histograms"]
    assert hist["event_dispatch_ms{event=Timed}"]["count"] == 1


def test_timed_records_even_on_error():
    try:
        with metrics.timed("block_ms", {"phase": "x"}):
            raise KeyError("k")
    except KeyError:
        pass
    series = metrics.snapshot()["histograms"]["block_ms{phase=x}"]
    assert series["count"] == 1
    assert series["p95"] == series["max"]
