"""Attachment codec: uploaded file -> LLM content block.

Images of a supported type are inlined as base64; anything else is described
to the model by a short text placeholder (name, declared type, size) and its
bytes never leave the process. Size limits are checked by
``validate_attachments`` before ``encode`` is ever called.
"""
from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Iterable

from chatcore import metrics
from chatcore.errors import AttachmentTooLargeError
from chatcore.llm.types import ContentBlock, ImageBlock, TextBlock
from chatcore.sessions.models import AttachmentRef

logger = logging.getLogger("chatdesk.attachments")

_IMAGE_MEDIA_TYPES = {
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/png": "image/png",
    "image/gif": "image/gif",
    "image/webp": "image/webp",
}
_SIZE_UNITS = ("B", "KB", "MB", "GB")


@dataclass(frozen=True, slots=True)
class Attachment:
    """One uploaded file as received by the transport layer."""

    name: str
    mime_type: str
    size_bytes: int
    data: bytes = b""

    @property
    def effective_size(self) -> int:
        # declared size may be missing or understated
        return max(self.size_bytes, len(self.data))


def format_size(size_bytes: int) -> str:
    """Human readable size, 1024 radix: ``0 B``, ``50 KB``, ``1.5 MB``."""
    if size_bytes <= 0:
        return "0 B"
    exp = 0
    while size_bytes >= 1024 ** (exp + 1) and exp < len(_SIZE_UNITS) - 1:
        exp += 1
    value = round(size_bytes / 1024**exp, 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[exp]}"


def normalize_image_type(mime_type: str) -> str | None:
    """Supported image media type for ``mime_type`` or None."""
    return _IMAGE_MEDIA_TYPES.get((mime_type or "").strip().lower())


def validate_attachments(
    attachments: Iterable[Attachment], max_attachment_size_bytes: int
) -> None:
    for att in attachments:
        size = att.effective_size
        if size > max_attachment_size_bytes:
            metrics.inc("attachments_rejected_total", {"reason": "too_large"})
            raise AttachmentTooLargeError(
                att.name, size, max_attachment_size_bytes
            )


def encode(attachment: Attachment) -> ContentBlock:
    mime = (attachment.mime_type or "").strip().lower()
    media_type = normalize_image_type(mime)
    if media_type is not None:
        metrics.inc("attachments_encoded_total", {"kind": "image"})
        return ImageBlock(
            media_type=media_type,
            data=base64.b64encode(attachment.data).decode("ascii"),
        )
    desc = (
        f"{attachment.name} ({attachment.mime_type}, "
        f"{format_size(attachment.effective_size)})"
    )
    if mime.startswith("image/"):
        metrics.inc("attachments_encoded_total", {"kind": "unsupported_image"})
        logger.debug("unsupported image type %s", mime)
        return TextBlock(text=f"\n\nUnsupported image format: {desc}")
    metrics.inc("attachments_encoded_total", {"kind": "placeholder"})
    return TextBlock(text=f"\n\nFile attachment: {desc}")


def to_ref(attachment: Attachment) -> AttachmentRef:
    """Persisted form; encoded bytes only for inlineable images."""
    encoded = None
    if normalize_image_type(attachment.mime_type) is not None:
        encoded = base64.b64encode(attachment.data).decode("ascii")
    return AttachmentRef(
        name=attachment.name,
        mime_type=attachment.mime_type,
        size_bytes=attachment.effective_size,
        encoded_data=encoded,
    )


__all__ = [
    "Attachment",
    "format_size",
    "normalize_image_type",
    "validate_attachments",
    "encode",
    "to_ref",
]
