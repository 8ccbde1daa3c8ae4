"""Quota-bounded session store.

Holds every conversation of one client context in memory and mirrors it to a
key/value backend as a single blob ``{sessions, currentSessionId,
layoutMode}``. Limits are supplied by the caller (no module-level singleton).

Rules enforced here:
  - a message larger than the whole storage budget is rejected
  - a session never holds more than max_messages_per_session messages; the
    oldest non-system ones are dropped first
  - eviction walks sessions by updated_at ascending (creation order breaks
    ties) and never touches the current session

Aggregate byte / session limits are *not* enforced on write; that is the
QuotaMonitor's job and runs after the write completes.

All mutations take ``self.lock`` (re-entrant) so eviction can't interleave
with an append.
"""
from __future__ import annotations

import json
import logging
from threading import RLock
from time import time
from typing import Any, Callable, Dict, List

from chatcore import metrics
from chatcore.errors import (
    MessageTooLargeError,
    SessionNotFoundError,
    ValidationError,
)
from chatcore.eventbus import EventBus, Handler
from chatcore.events import (
    BaseEvent,
    CurrentSessionChanged,
    MessageAppended,
    MessagesTrimmed,
    SessionCreated,
    SessionDeleted,
    SessionRenamed,
    SessionsEvicted,
    emit,
)

from .models import (
    DEFAULT_TITLE,
    LAYOUT_MODES,
    Message,
    QuotaLimits,
    Session,
    SessionUsage,
    StorageUsage,
    new_id,
    serialized_size,
)
from .persistence import KeyValueStorage

logger = logging.getLogger("chatdesk.sessions")

AUTO_TITLE_MAX_CHARS = 50


class SessionStore:
    def __init__(
        self,
        limits: QuotaLimits | None = None,
        *,
        storage: KeyValueStorage | None = None,
        storage_key: str = "chat-store",
        layout_mode: str = "floating",
        clock: Callable[[], float] = time,
        bus: EventBus | None = None,
    ) -> None:
        self.limits = limits or QuotaLimits()
        self.storage = storage
        self.storage_key = storage_key
        self.bus = bus or EventBus()
        self.lock = RLock()
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._current_id: str | None = None
        self._layout_mode = self._check_layout(layout_mode)
        self._seq = 0
        self._version = 0

    # ------------------------------------------------------------ queries
    @property
    def version(self) -> int:
        """Monotonic mutation counter."""
        return self._version

    @property
    def current_session_id(self) -> str | None:
        return self._current_id

    @property
    def current_session(self) -> Session | None:
        with self.lock:
            if self._current_id is None:
                return None
            return self._sessions.get(self._current_id)

    @property
    def layout_mode(self) -> str:
        return self._layout_mode

    def get_session(self, session_id: str) -> Session:
        with self.lock:
            try:
                return self._sessions[session_id]
            except KeyError:
                raise SessionNotFoundError(session_id) from None

    def list_sessions(self) -> List[Session]:
        """Most recently updated first."""
        with self.lock:
            return sorted(
                self._sessions.values(),
                key=lambda s: (s.updated_at, s.seq),
                reverse=True,
            )

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def eviction_candidates(self) -> List[Session]:
        """Non-current sessions, oldest-touched first."""
        with self.lock:
            return sorted(
                (
                    s
                    for s in self._sessions.values()
                    if s.id != self._current_id
                ),
                key=lambda s: (s.updated_at, s.seq),
            )

    def compute_usage(self) -> StorageUsage:
        with self.lock:
            per_session = tuple(
                SessionUsage(
                    id=s.id,
                    title=s.title,
                    size_bytes=s.size_bytes,
                    messages_count=len(s.messages),
                    attachments_count=s.attachments_count,
                    attachments_size_bytes=s.attachments_size_bytes,
                )
                for s in self._sessions.values()
            )
            blob_size = serialized_size(self.to_blob())
        return StorageUsage(
            total_size_bytes=sum(s.size_bytes for s in per_session),
            blob_size_bytes=blob_size,
            sessions_count=len(per_session),
            messages_count=sum(s.messages_count for s in per_session),
            attachments_count=sum(s.attachments_count for s in per_session),
            attachments_size_bytes=sum(
                s.attachments_size_bytes for s in per_session
            ),
            per_session=per_session,
        )

    def export_session(self, session_id: str) -> Dict[str, Any]:
        with self.lock:
            data = self.get_session(session_id).to_dict()
        data["exportedAt"] = self._clock()
        return data

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Observe store changes (event names are the event class names)."""
        return self.bus.subscribe(event, handler)

    # ---------------------------------------------------------- mutations
    def create_session(self, title: str | None = None) -> Session:
        with self.lock:
            now = self._clock()
            self._seq += 1
            session = Session(
                id=new_id(),
                title=(title or "").strip() or DEFAULT_TITLE,
                renamed=bool((title or "").strip()),
                created_at=now,
                updated_at=now,
                seq=self._seq,
            )
            self._sessions[session.id] = session
            previous = self._current_id
            self._current_id = session.id
            self._touch()
            self._emit(SessionCreated(session_id=session.id, title=session.title))
            self._emit(
                CurrentSessionChanged(
                    session_id=session.id, previous_id=previous
                )
            )
            logger.debug("session created id=%s", session.id)
            return session

    def ensure_current(self) -> Session:
        """Current session, creating one on first interaction."""
        with self.lock:
            current = self.current_session
            if current is None:
                current = self.create_session()
            return current

    def set_current(self, session_id: str) -> Session:
        with self.lock:
            session = self.get_session(session_id)
            if self._current_id != session_id:
                previous = self._current_id
                self._current_id = session_id
                self._touch()
                self._emit(
                    CurrentSessionChanged(
                        session_id=session_id, previous_id=previous
                    )
                )
            return session

    def append_message(self, session_id: str, message: Message) -> Message:
        size = message.size_bytes
        if size > self.limits.max_storage_size_bytes:
            raise MessageTooLargeError(size, self.limits.max_storage_size_bytes)
        with self.lock:
            session = self.get_session(session_id)
            session.messages.append(message)
            session.updated_at = self._clock()
            if (
                not session.renamed
                and session.title == DEFAULT_TITLE
                and message.role == "user"
                and message.content.strip()
            ):
                session.title = message.content.strip()[:AUTO_TITLE_MAX_CHARS]
            dropped = self._trim(session)
            self._touch()
            metrics.inc("session_messages_total", {"role": message.role})
            self._emit(
                MessageAppended(
                    session_id=session_id,
                    message_id=message.id,
                    role=message.role,
                    size_bytes=size,
                    attachments=len(message.attachments),
                )
            )
            if dropped:
                self._emit(
                    MessagesTrimmed(session_id=session_id, dropped=dropped)
                )
            return message

    def rename_session(self, session_id: str, title: str) -> Session:
        title = (title or "").strip()
        if not title:
            raise ValidationError("session title must not be empty")
        with self.lock:
            session = self.get_session(session_id)
            session.title = title
            session.renamed = True
            self._touch()
            self._emit(SessionRenamed(session_id=session_id, title=title))
            return session

    def clear_messages(self, session_id: str) -> Session:
        with self.lock:
            session = self.get_session(session_id)
            session.messages.clear()
            session.updated_at = self._clock()
            self._touch()
            return session

    def delete_session(self, session_id: str) -> None:
        with self.lock:
            self._remove(session_id, reason="user")
            self._touch()

    def clear_all(self) -> int:
        with self.lock:
            ids = list(self._sessions)
            for sid in ids:
                self._remove(sid, reason="cleared")
            self._touch()
            return len(ids)

    def evict_oldest(self, count: int, *, reason: str = "manual") -> int:
        """Remove up to ``count`` oldest non-current sessions.

        Returns the number actually removed (0 when nothing is evictable or
        count <= 0); over-requesting is not an error.
        """
        if count <= 0:
            return 0
        with self.lock:
            victims = self.eviction_candidates()[:count]
            for s in victims:
                self._remove(s.id, reason="evicted")
            if victims:
                self._touch()
                metrics.inc_sessions_evicted(len(victims), reason)
                self._emit(
                    SessionsEvicted(
                        session_ids=[s.id for s in victims],
                        requested=count,
                        removed=len(victims),
                    )
                )
                logger.info(
                    "evicted sessions requested=%d removed=%d reason=%s",
                    count,
                    len(victims),
                    reason,
                )
            return len(victims)

    def set_layout_mode(self, mode: str) -> None:
        with self.lock:
            self._layout_mode = self._check_layout(mode)
            self._touch()

    # -------------------------------------------------------- persistence
    def to_blob(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "sessions": [s.to_dict() for s in self._sessions.values()],
                "currentSessionId": self._current_id,
                "layoutMode": self._layout_mode,
            }

    def save(self) -> None:
        if self.storage is None:
            return
        with self.lock:
            raw = json.dumps(
                self.to_blob(), separators=(",", ":"), ensure_ascii=False
            )
        try:
            self.storage.set(self.storage_key, raw)
        except OSError:
            metrics.inc("store_persist_errors_total")
            logger.exception("persisting session blob failed")

    def load(self) -> None:
        """Replace in-memory state with the persisted blob (if any)."""
        if self.storage is None:
            return
        try:
            raw = self.storage.get(self.storage_key)
            if not raw:
                return
            blob = json.loads(raw)
            if not isinstance(blob, dict):
                raise TypeError(f"blob is {type(blob).__name__}, not an object")
            sessions = [
                Session.from_dict(d, seq=i + 1)
                for i, d in enumerate(
                    sorted(
                        blob.get("sessions") or [],
                        key=lambda d: d.get("createdAt", 0),
                    )
                )
            ]
        except (ValueError, KeyError, TypeError, AttributeError):
            # UnicodeDecodeError is a ValueError
            metrics.inc("store_load_errors_total")
            logger.warning("persisted session blob unreadable; starting empty")
            return
        with self.lock:
            self._sessions = {s.id: s for s in sessions}
            self._seq = len(sessions)
            current = blob.get("currentSessionId")
            self._current_id = current if current in self._sessions else None
            layout = blob.get("layoutMode")
            if layout in LAYOUT_MODES:
                self._layout_mode = layout
            self._version += 1
        logger.info("loaded %d sessions from storage", len(sessions))

    # ------------------------------------------------------------ helpers
    def _trim(self, session: Session) -> int:
        limit = self.limits.max_messages_per_session
        dropped = 0
        while len(session.messages) > limit:
            idx = next(
                (
                    i
                    for i, m in enumerate(session.messages)
                    if m.role != "system"
                ),
                None,
            )
            if idx is None:
                break
            del session.messages[idx]
            dropped += 1
        return dropped

    def _remove(self, session_id: str, *, reason: str) -> None:
        if session_id not in self._sessions:
            raise SessionNotFoundError(session_id)
        del self._sessions[session_id]
        was_current = session_id == self._current_id
        self._emit(
            SessionDeleted(
                session_id=session_id, reason=reason, was_current=was_current
            )
        )
        if was_current:
            remaining = self.list_sessions()
            self._current_id = remaining[0].id if remaining else None
            self._emit(
                CurrentSessionChanged(
                    session_id=self._current_id, previous_id=session_id
                )
            )

    def _touch(self) -> None:
        self._version += 1
        self.save()

    def _emit(self, ev: BaseEvent) -> None:
        emit(ev, bus=self.bus)

    @staticmethod
    def _check_layout(mode: str) -> str:
        if mode not in LAYOUT_MODES:
            raise ValidationError(f"invalid layout mode: {mode!r}")
        return mode


__all__ = ["SessionStore", "AUTO_TITLE_MAX_CHARS"]
