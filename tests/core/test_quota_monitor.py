from chatcore import metrics
from chatcore.sessions import Message, QuotaLimits, QuotaMonitor, QuotaPolicy, SessionStore
from chatcore.sessions.quota import CRITICAL, SOFT, QuotaThreshold


class _Clock:
    def __init__(self, start: float = 10_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def _big(n: int) -> Message:
    return Message.create("user", "a" * n)


def _capture(store: SessionStore, event: str):
    seen = []
    store.subscribe(event, lambda p: seen.append(p))
    return seen


def test_critical_warning_fires_once_without_eviction():
    clock = _Clock()
    store = SessionStore(QuotaLimits(), clock=clock)
    monitor = QuotaMonitor(store, clock=clock)
    warnings = _capture(store, "QuotaWarning")
    s = store.create_session()
    store.append_message(s.id, _big(3_800_000))
    first = monitor.tick()
    assert first.should_warn_soft and not first.should_warn_critical

    store.append_message(s.id, _big(200 * 1024))
    status = monitor.tick()
    assert 95.0 <= status.percentage < 100.0
    assert status.should_warn_critical
    assert not status.should_auto_evict
    assert len(store) == 1

    clock.now += 60
    again = monitor.check()
    assert not again.should_warn_critical and not again.should_warn_soft
    assert [w["level"] for w in warnings] == [SOFT, CRITICAL]


def test_thresholds_are_independent_timers():
    clock = _Clock()
    store = SessionStore(QuotaLimits(max_storage_size_bytes=100_000), clock=clock)
    monitor = QuotaMonitor(store, clock=clock)
    s = store.create_session()
    store.append_message(s.id, _big(96_500))
    status = monitor.check()
    assert status.should_warn_soft and status.should_warn_critical

    clock.now += 1801
    status = monitor.check()
    assert status.should_warn_critical
    assert not status.should_warn_soft

    clock.now += 1800
    status = monitor.check()
    assert status.should_warn_soft


def test_eleven_sessions_trigger_eviction_of_oldest():
    store = SessionStore(QuotaLimits(max_sessions=10))
    ids = [store.create_session().id for _ in range(11)]
    monitor = QuotaMonitor(store, QuotaPolicy(eviction_batch_size=1))
    assert monitor.check().should_auto_evict
    report = monitor.enforce()
    assert report.resolved
    assert report.evicted == 1
    assert len(store) == 10
    assert ids[0] not in store
    assert store.current_session_id == ids[-1]


def test_batch_policy_evicts_full_batch():
    store = SessionStore(QuotaLimits(max_sessions=10))
    for _ in range(11):
        store.create_session()
    report = QuotaMonitor(store).enforce()
    assert report.evicted == 2 and report.batches == 1
    assert len(store) == 9
    snap = metrics.snapshot()["counters"]
    assert snap["sessions_evicted_total{reason=quota}"] == 2


def test_byte_overflow_evicts_until_under_limit():
    store = SessionStore(QuotaLimits(max_storage_size_bytes=10_000))
    for _ in range(5):
        s = store.create_session()
        store.append_message(s.id, _big(2_500))
    monitor = QuotaMonitor(store)
    status = monitor.tick()
    assert status.should_auto_evict
    usage = store.compute_usage()
    assert usage.blob_size_bytes <= 10_000
    assert store.current_session_id in store


def test_unresolvable_state_is_reported():
    store = SessionStore(QuotaLimits(max_storage_size_bytes=2_000))
    unresolved = _capture(store, "QuotaUnresolvable")
    s = store.create_session()
    for _ in range(3):
        store.append_message(s.id, _big(900))
    report = QuotaMonitor(store).enforce()
    assert not report.resolved
    assert report.evicted == 0
    assert len(unresolved) == 1
    assert metrics.snapshot()["counters"]["quota_unresolvable_total"] == 1


def test_tick_is_noop_when_quiet_and_unchanged():
    store = SessionStore(QuotaLimits())
    store.create_session()
    monitor = QuotaMonitor(store)
    assert monitor.tick() is not None
    assert monitor.tick() is None
    store.create_session()
    assert monitor.tick() is not None


def test_policy_is_table_driven():
    policy = QuotaPolicy(
        thresholds=(QuotaThreshold(SOFT, 50.0, 0.0),),
        eviction_batch_size=3,
    )
    store = SessionStore(QuotaLimits(max_storage_size_bytes=10_000))
    s = store.create_session()
    store.append_message(s.id, _big(6_000))
    status = QuotaMonitor(store, policy).check()
    assert status.should_warn_soft
    assert not status.should_warn_critical


def test_background_loop_start_stop():
    store = SessionStore(QuotaLimits())
    monitor = QuotaMonitor(store, QuotaPolicy(poll_interval_s=0.01))
    monitor.start()
    monitor.stop()
    assert monitor._thread is None
