"""In-process metrics registry for the chat desk.

Counters and latency series keyed by ``(name, sorted labels)``. Series keep a
bounded window of recent samples for percentiles plus running count/sum over
the process lifetime. ``snapshot()`` renders keys as ``name{k=v,...}`` which is
what ``GET /metrics`` returns and what tests assert on.

Names in use:
    chat_turns_total{outcome}
    llm_request_latency_ms{phase|provider}, llm_errors_total{kind}
    tool_calls_total{tool,status}, tool_call_latency_ms{tool}
    orchestration_total{outcome}
    session_messages_total{role}, session_messages_trimmed_total
    sessions_created_total, sessions_deleted_total
    sessions_evicted_total{reason}, quota_warnings_total{level}
    quota_unresolvable_total
    attachments_encoded_total{kind}
    env_override_total{path}
    events_emitted_total{event}, handler_exceptions_total{event}
    api_request_total{route,method}, api_request_latency_ms{route,method}
"""
from __future__ import annotations

from collections import deque
from contextlib import contextmanager
from threading import RLock
from time import perf_counter, time
from typing import Any, Deque, Dict, Iterator, Tuple

LabelKey = Tuple[Tuple[str, str], ...]
SeriesKey = Tuple[str, LabelKey]

SAMPLE_WINDOW = 512

_LOCK = RLock()
_COUNTERS: Dict[SeriesKey, float] = {}
_SERIES: Dict[SeriesKey, "_Series"] = {}


class _Series:
    __slots__ = ("count", "total", "samples")

    def __init__(self) -> None:
        self.count = 0
        self.total = 0.0
        self.samples: Deque[float] = deque(maxlen=SAMPLE_WINDOW)

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.samples.append(value)

    def summary(self) -> Dict[str, float]:
        ordered = sorted(self.samples)
        n = len(ordered)
        return {
            "count": self.count,
            "sum": round(self.total, 3),
            "min": ordered[0],
            "max": ordered[-1],
            "p50": ordered[n // 2],
            "p95": ordered[min(n - 1, int(n * 0.95))],
            "last": self.samples[-1],
        }


def _key(name: str, labels: Dict[str, Any] | None) -> SeriesKey:
    if not labels:
        return name, ()
    return name, tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _render(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


def inc(
    name: str, labels: Dict[str, Any] | None = None, value: float = 1.0
) -> None:
    key = _key(name, labels)
    with _LOCK:
        _COUNTERS[key] = _COUNTERS.get(key, 0.0) + value


def observe(
    name: str, value: float, labels: Dict[str, Any] | None = None
) -> None:
    key = _key(name, labels)
    with _LOCK:
        series = _SERIES.get(key)
        if series is None:
            series = _SERIES[key] = _Series()
        series.add(float(value))


@contextmanager
def timed(name: str, labels: Dict[str, Any] | None = None) -> Iterator[None]:
    """Observe the wall time of the block in milliseconds, even on error."""
    t0 = perf_counter()
    try:
        yield
    finally:
        observe(name, (perf_counter() - t0) * 1000.0, labels)


def snapshot() -> Dict[str, Any]:
    with _LOCK:
        return {
            "ts": time(),
            "counters": {_render(k): v for k, v in _COUNTERS.items()},
            "histograms": {
                _render(k): s.summary() for k, s in _SERIES.items() if s.count
            },
        }


def reset_for_tests() -> None:
    with _LOCK:
        _COUNTERS.clear()
        _SERIES.clear()


def inc_sessions_evicted(count: int, reason: str = "quota") -> None:
    # reason: quota (monitor) | manual (direct evict_oldest)
    if count:
        inc("sessions_evicted_total", {"reason": reason}, value=count)


def inc_quota_warning(level: str) -> None:
    if level:
        inc("quota_warnings_total", {"level": level})


__all__ = [
    "inc",
    "observe",
    "timed",
    "snapshot",
    "reset_for_tests",
    "inc_sessions_evicted",
    "inc_quota_warning",
]
