"""Session data shapes shared by the store, the monitor and the HTTP layer.

Persisted form uses camelCase keys so the blob stays interchangeable with the
browser widget (`{sessions, currentSessionId, layoutMode}`).
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from time import time
from typing import Any, Dict, Iterable

from chatcore.errors import ValidationError

ROLES = ("user", "assistant", "system")
LAYOUT_MODES = ("floating", "sidebar", "fullscreen")
DEFAULT_TITLE = "New chat"


def serialized_size(obj: Any) -> int:
    """Byte length of the compact UTF-8 JSON form (what storage holds)."""
    return len(
        json.dumps(obj, separators=(",", ":"), ensure_ascii=False).encode(
            "utf-8"
        )
    )


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class AttachmentRef:
    name: str
    mime_type: str
    size_bytes: int
    # base64 payload, only for images the codec inlines
    encoded_data: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "mimeType": self.mime_type,
            "sizeBytes": self.size_bytes,
        }
        if self.encoded_data is not None:
            data["encodedData"] = self.encoded_data
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttachmentRef":
        return cls(
            name=str(data.get("name", "")),
            mime_type=str(data.get("mimeType", "")),
            size_bytes=int(data.get("sizeBytes", 0)),
            encoded_data=data.get("encodedData"),
        )

    @property
    def stored_bytes(self) -> int:
        if not self.encoded_data:
            return 0
        return len(self.encoded_data.encode("utf-8"))


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    role: str
    content: str
    created_at: float
    attachments: tuple[AttachmentRef, ...] = ()

    @classmethod
    def create(
        cls,
        role: str,
        content: str,
        attachments: Iterable[AttachmentRef] = (),
        *,
        created_at: float | None = None,
    ) -> "Message":
        if role not in ROLES:
            raise ValidationError(f"invalid role: {role!r}")
        if not isinstance(content, str):
            raise ValidationError("message content must be a string")
        return cls(
            id=new_id(),
            role=role,
            content=content,
            created_at=time() if created_at is None else created_at,
            attachments=tuple(attachments),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "attachments": [a.to_dict() for a in self.attachments],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            id=str(data.get("id") or new_id()),
            role=str(data.get("role", "user")),
            content=str(data.get("content", "")),
            created_at=float(data.get("createdAt", 0.0)),
            attachments=tuple(
                AttachmentRef.from_dict(a) for a in data.get("attachments") or []
            ),
        )

    @property
    def size_bytes(self) -> int:
        return serialized_size(self.to_dict())


@dataclass(slots=True)
class Session:
    id: str
    title: str
    created_at: float
    updated_at: float
    messages: list[Message] = field(default_factory=list)
    # title chosen by the user; auto-titling leaves it alone
    renamed: bool = False
    # creation order inside one store; eviction tie-break, not persisted
    seq: int = 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.renamed:
            data["renamed"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], seq: int = 0) -> "Session":
        created = float(data.get("createdAt", 0.0))
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or DEFAULT_TITLE),
            created_at=created,
            updated_at=float(data.get("updatedAt", created)),
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            renamed=bool(data.get("renamed", False)),
            seq=seq,
        )

    @property
    def size_bytes(self) -> int:
        return serialized_size(self.to_dict())

    @property
    def attachments_count(self) -> int:
        return sum(len(m.attachments) for m in self.messages)

    @property
    def attachments_size_bytes(self) -> int:
        return sum(a.stored_bytes for m in self.messages for a in m.attachments)


@dataclass(frozen=True, slots=True)
class QuotaLimits:
    max_storage_size_bytes: int = 4 * 1024 * 1024
    max_sessions: int = 10
    max_messages_per_session: int = 50
    max_attachment_size_bytes: int = 1024 * 1024

    @classmethod
    def from_config(cls, cfg: Any) -> "QuotaLimits":
        """Build from a ``QuotaLimitsConfig`` (or any object with same attrs)."""
        return cls(
            max_storage_size_bytes=cfg.max_storage_size_bytes,
            max_sessions=cfg.max_sessions,
            max_messages_per_session=cfg.max_messages_per_session,
            max_attachment_size_bytes=cfg.max_attachment_size_bytes,
        )


@dataclass(frozen=True, slots=True)
class SessionUsage:
    id: str
    title: str
    size_bytes: int
    messages_count: int
    attachments_count: int
    attachments_size_bytes: int


@dataclass(frozen=True, slots=True)
class StorageUsage:
    """Derived usage snapshot; never persisted.

    total_size_bytes is the sum of per-session sizes; blob_size_bytes is the
    exact length of the persisted blob (sessions + envelope) and is what the
    quota compares against max_storage_size_bytes.
    """
    total_size_bytes: int
    blob_size_bytes: int
    sessions_count: int
    messages_count: int
    attachments_count: int
    attachments_size_bytes: int
    per_session: tuple[SessionUsage, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalSizeBytes": self.total_size_bytes,
            "blobSizeBytes": self.blob_size_bytes,
            "sessionsCount": self.sessions_count,
            "messagesCount": self.messages_count,
            "attachmentsCount": self.attachments_count,
            "attachmentsSizeBytes": self.attachments_size_bytes,
            "perSessionBreakdown": [
                {
                    "id": s.id,
                    "title": s.title,
                    "sizeBytes": s.size_bytes,
                    "messagesCount": s.messages_count,
                    "attachmentsCount": s.attachments_count,
                    "attachmentsSizeBytes": s.attachments_size_bytes,
                }
                for s in self.per_session
            ],
        }


__all__ = [
    "ROLES",
    "LAYOUT_MODES",
    "DEFAULT_TITLE",
    "serialized_size",
    "new_id",
    "AttachmentRef",
    "Message",
    "Session",
    "QuotaLimits",
    "SessionUsage",
    "StorageUsage",
]
