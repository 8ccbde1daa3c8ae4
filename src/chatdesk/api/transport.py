"""Inbound request normalization for POST /api/chat.

Two wire forms reach the endpoint:
  - JSON ``{message, context?, messages?, model?, sessionId?}``
  - multipart with the same scalar fields (``context`` / ``messages`` as JSON
    strings) plus ``attachment-{i}`` file parts, optional
    ``attachment-{i}-name|type|size`` fields and ``attachmentCount``.
Both become one ``ChatTurnRequest``.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List

from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import FormData, UploadFile

from chatcore.attachments import Attachment
from chatcore.errors import AttachmentTooLargeError, ValidationError
from chatcore.orchestration import context_from_payload
from chatcore.service import ChatTurnRequest


class ChatBody(BaseModel):
    # message stays untyped so a non-string gets the domain error, not a 422
    message: Any = None
    context: Dict[str, Any] | None = None
    messages: List[Dict[str, Any]] | None = None
    model: str | None = None
    session_id: str | None = Field(None, alias="sessionId")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _build(body: ChatBody, attachments: List[Attachment]) -> ChatTurnRequest:
    try:
        context = context_from_payload(body.context)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid context: {e.errors()[0]['msg']}") from e
    return ChatTurnRequest(
        message=body.message,
        context=context,
        messages=body.messages,
        model=body.model or None,
        session_id=body.session_id or None,
        attachments=attachments,
    )


def _parse_body(payload: Dict[str, Any]) -> ChatBody:
    try:
        return ChatBody.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid request: {e.errors()[0]['msg']}") from e


def normalize_json(payload: Any) -> ChatTurnRequest:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return _build(_parse_body(payload), [])


def _json_field(form: FormData, name: str) -> Any:
    raw = form.get(name)
    if raw is None or isinstance(raw, UploadFile):
        return None
    raw = raw.strip()
    if not raw or raw == "null":
        return None
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON in form field '{name}'") from e


def _int_field(form: FormData, name: str, default: int = 0) -> int:
    raw = form.get(name)
    if raw is None or isinstance(raw, UploadFile) or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid integer in form field '{name}'") from e


async def normalize_form(
    form: FormData, max_attachment_size_bytes: int | None = None
) -> ChatTurnRequest:
    """Multipart form -> ChatTurnRequest.

    Declared sizes are checked before a part is read; missing file parts are
    skipped.
    """
    count = _int_field(form, "attachmentCount")
    attachments: List[Attachment] = []
    for i in range(max(count, 0)):
        part = form.get(f"attachment-{i}")
        if not isinstance(part, UploadFile):
            continue
        name = form.get(f"attachment-{i}-name")
        mime = form.get(f"attachment-{i}-type")
        if not isinstance(name, str) or not name:
            name = part.filename or f"attachment-{i}"
        mime = (
            mime
            if isinstance(mime, str) and mime
            else part.content_type or "application/octet-stream"
        )
        declared = _int_field(form, f"attachment-{i}-size")
        if (
            max_attachment_size_bytes is not None
            and declared > max_attachment_size_bytes
        ):
            raise AttachmentTooLargeError(
                name, declared, max_attachment_size_bytes
            )
        data = await part.read()
        attachments.append(
            Attachment(
                name=name,
                mime_type=mime,
                size_bytes=declared or len(data),
                data=data,
            )
        )
    payload: Dict[str, Any] = {
        "context": _json_field(form, "context"),
        "messages": _json_field(form, "messages"),
    }
    for key in ("message", "model", "sessionId"):
        value = form.get(key)
        payload[key] = value if isinstance(value, str) else None
    return _build(_parse_body(payload), attachments)


async def normalize_request(
    request: Request, max_attachment_size_bytes: int | None = None
) -> ChatTurnRequest:
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        form = await request.form()
        return await normalize_form(form, max_attachment_size_bytes)
    try:
        payload = await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body") from e
    return normalize_json(payload)


__all__ = [
    "ChatBody",
    "normalize_json",
    "normalize_form",
    "normalize_request",
]
