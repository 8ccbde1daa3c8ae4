"""Typed event dataclasses + any-subscriber bridge.

``emit(ev)`` publishes on the process bus (``chatcore.eventbus``) unless an
explicit bus is given; SessionStore passes its own bus so UI observers see
store changes without touching global state. Any-subscribers registered via
``on`` receive every event published through this module regardless of bus.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from time import time
from typing import Any, Callable, Dict, List, Protocol

from chatcore import metrics as _metrics
from chatcore.eventbus import EventBus, get_bus

EventHandler = Callable[[str, Dict[str, Any]], None]


class SupportsEvent(Protocol):  # pragma: no cover
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        ...


@dataclass(slots=True)
class BaseEvent:
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


# ------------------------------ store -------------------------------------

@dataclass(slots=True)
class SessionCreated(BaseEvent):
    session_id: str
    title: str


@dataclass(slots=True)
class SessionDeleted(BaseEvent):
    session_id: str
    reason: str  # user|evicted|cleared
    was_current: bool = False


@dataclass(slots=True)
class SessionRenamed(BaseEvent):
    session_id: str
    title: str


@dataclass(slots=True)
class CurrentSessionChanged(BaseEvent):
    session_id: str | None
    previous_id: str | None = None


@dataclass(slots=True)
class MessageAppended(BaseEvent):
    session_id: str
    message_id: str
    role: str
    size_bytes: int
    attachments: int = 0


@dataclass(slots=True)
class MessagesTrimmed(BaseEvent):
    """Oldest non-system messages dropped to honor max_messages_per_session."""
    session_id: str
    dropped: int


@dataclass(slots=True)
class SessionsEvicted(BaseEvent):
    session_ids: list[str]
    requested: int
    removed: int


# ------------------------------ quota -------------------------------------

@dataclass(slots=True)
class QuotaWarning(BaseEvent):
    """Quota notification.

    level: soft (>=90%) | critical (>=95%) | exceeded (>100% or too many
    sessions, auto-eviction follows).
    """
    level: str
    percentage: float
    blob_size_bytes: int
    sessions_count: int
    message: str = ""


@dataclass(slots=True)
class QuotaUnresolvable(BaseEvent):
    """Eviction ran out of candidates while still over a limit."""
    blob_size_bytes: int
    sessions_count: int
    max_storage_size_bytes: int
    max_sessions: int


# --------------------------- orchestration --------------------------------

@dataclass(slots=True)
class OrchestrationStateChanged(BaseEvent):
    request_id: str
    from_state: str
    to_state: str


@dataclass(slots=True)
class ToolCallPlanned(BaseEvent):
    """Tool call requested by the model.

    args_preview_hash: privacy-preserving hash of canonical args.
    seq: order within the model response (0-based).
    """
    request_id: str
    tool: str
    tool_use_id: str
    args_preview_hash: str
    seq: int


@dataclass(slots=True)
class ToolCallResult(BaseEvent):
    """Result of one tool execution.

    status: ok|error
    error_type/message only on failure.
    """
    request_id: str
    tool: str
    tool_use_id: str
    status: str
    latency_ms: int
    seq: int
    error_type: str | None = None
    message: str | None = None


@dataclass(slots=True)
class OrchestrationCompleted(BaseEvent):
    request_id: str
    model_id: str
    outcome: str  # text|tools|error
    tool_calls: int
    latency_ms: int
    error_type: str | None = None


_ANY_SUBS: List[EventHandler] = []


def _metrics_collector(
    name: str, payload: Dict[str, Any]
) -> None:  # noqa: D401
    if name == "ToolCallResult":
        _metrics.inc(
            "tool_calls_total",
            {
                "tool": payload.get("tool", "unknown"),
                "status": payload.get("status", "unknown"),
            },
        )
        _metrics.observe(
            "tool_call_latency_ms",
            payload.get("latency_ms", 0),
            {"tool": payload.get("tool", "unknown")},
        )
    elif name == "OrchestrationCompleted":
        _metrics.inc(
            "orchestration_total",
            {"outcome": payload.get("outcome", "unknown")},
        )
    elif name == "QuotaWarning":
        _metrics.inc_quota_warning(payload.get("level", "unknown"))
    elif name == "QuotaUnresolvable":
        _metrics.inc("quota_unresolvable_total")
    elif name == "SessionCreated":
        _metrics.inc("sessions_created_total")
    elif name == "SessionDeleted":
        _metrics.inc(
            "sessions_deleted_total",
            {"reason": payload.get("reason", "unknown")},
        )
    elif name == "MessagesTrimmed":
        _metrics.inc(
            "session_messages_trimmed_total",
            value=payload.get("dropped", 0),
        )


_ANY_SUBS.append(_metrics_collector)


def emit(ev: BaseEvent | SupportsEvent, bus: EventBus | None = None) -> None:
    name = ev.__class__.__name__
    payload = ev.to_event()
    (bus or get_bus()).emit(name, payload)
    for h in list(_ANY_SUBS):  # copy for isolation
        try:
            h(name, dict(payload))
        except Exception:  # noqa: BLE001
            _metrics.inc("handler_exceptions_total", {"event": name})


def on(handler: EventHandler) -> Callable[[], None]:
    _ANY_SUBS.append(handler)

    def _unsub() -> None:  # noqa: D401
        try:
            _ANY_SUBS.remove(handler)
        except ValueError:
            pass
    return _unsub


def reset_listeners_for_tests() -> None:  # pragma: no cover
    _ANY_SUBS.clear()
    _ANY_SUBS.append(_metrics_collector)


__all__ = [
    "emit",
    "on",
    "BaseEvent",
    "SessionCreated",
    "SessionDeleted",
    "SessionRenamed",
    "CurrentSessionChanged",
    "MessageAppended",
    "MessagesTrimmed",
    "SessionsEvicted",
    "QuotaWarning",
    "QuotaUnresolvable",
    "OrchestrationStateChanged",
    "ToolCallPlanned",
    "ToolCallResult",
    "OrchestrationCompleted",
    "reset_listeners_for_tests",
]
