"""Central error taxonomy + exception hierarchy for the chat core.

Every exception carries an ``error_type`` code from the taxonomy below; the
HTTP layer maps codes to status codes and user-facing messages, metrics use
them as labels.
"""
from __future__ import annotations

_ALLOWED_ERROR_TYPES = {
    # configuration
    "config-missing-credential",
    "config-invalid",
    "config-out-of-range",
    # request validation
    "invalid-params",
    "attachment-too-large",
    "message-too-large",
    "session-not-found",
    # upstream model
    "provider-error",
    "timeout",
    # tools
    "tool-error",
    "unknown-function",
    # quota
    "quota-unresolvable",
    # infra
    "event-handler-error",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


def map_exception(e: Exception, phase: str) -> str:
    """Classify an arbitrary exception into a taxonomy code."""
    code = getattr(e, "error_type", None)
    if isinstance(code, str) and code in _ALLOWED_ERROR_TYPES:
        return code
    name = e.__class__.__name__.lower()
    msg = str(e).lower()
    if phase == "model":
        if "timeout" in name or "timeout" in msg:
            return "timeout"
        return "provider-error"
    if phase == "tool":
        return "tool-error"
    return "invalid-params"


class ChatError(Exception):
    """Base class for all chat core errors."""

    error_type = "invalid-params"

    def __init__(self, message: str, *, error_type: str | None = None):
        super().__init__(message)
        if error_type is not None:
            self.error_type = validate_error_type(error_type)


class ValidationError(ChatError):
    """Request rejected before any model call (cheap, synchronous)."""


class AttachmentTooLargeError(ValidationError):
    error_type = "attachment-too-large"

    def __init__(self, name: str, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"Attachment '{name}' is {size_bytes} bytes; "
            f"limit is {limit_bytes} bytes"
        )
        self.name = name
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class MessageTooLargeError(ValidationError):
    error_type = "message-too-large"

    def __init__(self, size_bytes: int, limit_bytes: int):
        super().__init__(
            f"Message serializes to {size_bytes} bytes which exceeds the "
            f"storage budget of {limit_bytes} bytes"
        )
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class SessionNotFoundError(ChatError, KeyError):
    error_type = "session-not-found"

    def __init__(self, session_id: str):
        ChatError.__init__(self, f"Session not found: {session_id}")
        self.session_id = session_id

    def __str__(self) -> str:  # KeyError would repr() the message
        return self.args[0]


__all__ = [
    "validate_error_type",
    "map_exception",
    "ChatError",
    "ValidationError",
    "AttachmentTooLargeError",
    "MessageTooLargeError",
    "SessionNotFoundError",
]
