"""Session management + quota endpoints over the app's SessionStore."""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from chatcore.errors import SessionNotFoundError, ValidationError
from chatcore.sessions import QuotaMonitor, Session, SessionStore

router = APIRouter()


class CreateSessionBody(BaseModel):
    title: str | None = None


class UpdateSessionBody(BaseModel):
    title: str | None = None
    current: bool | None = None


class LayoutBody(BaseModel):
    layout_mode: str


def _store(request: Request) -> SessionStore:
    return request.app.state.store


def _monitor(request: Request) -> QuotaMonitor:
    return request.app.state.monitor


def _summary(session: Session, current_id: str | None) -> dict:
    return {
        "id": session.id,
        "title": session.title,
        "createdAt": session.created_at,
        "updatedAt": session.updated_at,
        "messagesCount": len(session.messages),
        "sizeBytes": session.size_bytes,
        "current": session.id == current_id,
    }


def _get(store: SessionStore, session_id: str) -> Session:
    try:
        return store.get_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/sessions")
def list_sessions(request: Request):  # noqa: D401
    store = _store(request)
    with store.lock:
        current = store.current_session_id
        items = [_summary(s, current) for s in store.list_sessions()]
    return {
        "sessions": items,
        "currentSessionId": current,
        "layoutMode": store.layout_mode,
    }


@router.post("/sessions", status_code=201)
def create_session(request: Request, body: CreateSessionBody | None = None):
    store = _store(request)
    session = store.create_session((body.title if body else None))
    _monitor(request).tick()
    return _summary(session, store.current_session_id)


@router.get("/sessions/{session_id}")
def get_session(request: Request, session_id: str):  # noqa: D401
    store = _store(request)
    with store.lock:
        data = _get(store, session_id).to_dict()
        data["current"] = session_id == store.current_session_id
    return data


@router.patch("/sessions/{session_id}")
def update_session(
    request: Request, session_id: str, body: UpdateSessionBody
):  # noqa: D401
    store = _store(request)
    _get(store, session_id)
    try:
        if body.title is not None:
            store.rename_session(session_id, body.title)
        if body.current:
            store.set_current(session_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _summary(store.get_session(session_id), store.current_session_id)


@router.delete("/sessions/{session_id}")
def delete_session(request: Request, session_id: str):  # noqa: D401
    store = _store(request)
    try:
        store.delete_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return {"ok": True, "currentSessionId": store.current_session_id}


@router.post("/sessions/{session_id}/clear")
def clear_session(request: Request, session_id: str):  # noqa: D401
    store = _store(request)
    _get(store, session_id)
    session = store.clear_messages(session_id)
    return _summary(session, store.current_session_id)


@router.get("/sessions/{session_id}/export")
def export_session(request: Request, session_id: str):  # noqa: D401
    store = _store(request)
    try:
        return store.export_session(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.put("/layout")
def set_layout(request: Request, body: LayoutBody):  # noqa: D401
    store = _store(request)
    try:
        store.set_layout_mode(body.layout_mode)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"layoutMode": store.layout_mode}


@router.get("/quota")
def quota_status(request: Request):  # noqa: D401
    monitor = _monitor(request)
    usage = monitor.store.compute_usage()
    limits = monitor.store.limits
    return {
        "percentage": round(monitor.percentage(usage), 2),
        "exceeded": monitor.is_exceeded(usage),
        "limits": {
            "maxStorageSizeBytes": limits.max_storage_size_bytes,
            "maxSessions": limits.max_sessions,
            "maxMessagesPerSession": limits.max_messages_per_session,
            "maxAttachmentSizeBytes": limits.max_attachment_size_bytes,
        },
        "usage": usage.to_dict(),
    }


@router.post("/quota/enforce")
def quota_enforce(request: Request):  # noqa: D401
    return _monitor(request).enforce().to_dict()
