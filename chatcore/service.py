"""Conversation service: one user turn against the session store.

Order of operations for ``send``:
  1. cheap validation (message, attachment sizes)
  2. persist the user message (it survives any later failure)
  3. run the orchestration loop
  4. persist the assistant reply (success only)
Quota monitor ``tick()`` runs after each write, never before it.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence

from chatcore import metrics
from chatcore.attachments import Attachment, to_ref, validate_attachments
from chatcore.errors import ChatError, ValidationError
from chatcore.llm.exceptions import (
    ProviderConfigError,
    ProviderError,
    ProviderTimeoutError,
)
from chatcore.orchestration import (
    ChatOrchestrator,
    ChatTurn,
    FunctionResult,
    PageContext,
)
from chatcore.sessions import Message, QuotaMonitor, SessionStore

logger = logging.getLogger("chatdesk.service")

INVALID_MESSAGE = "Invalid message content"
NOT_CONFIGURED = "AI service is not configured. Please check the API key."
GENERIC_FAILURE = (
    "I apologize, but I encountered an error processing your request. "
    "Please try again."
)
TIMEOUT_FAILURE = "The AI service took too long to respond. Please try again."

_STATUS_BY_ERROR = {
    "invalid-params": 400,
    "attachment-too-large": 400,
    "message-too-large": 400,
    "session-not-found": 404,
    "config-missing-credential": 500,
    "provider-error": 500,
    "timeout": 504,
}


@dataclass(slots=True)
class ChatTurnRequest:
    """Transport-independent form of one inbound chat request."""

    message: Any
    context: PageContext | None = None
    messages: Sequence[Mapping[str, Any]] | None = None
    model: str | None = None
    session_id: str | None = None
    attachments: List[Attachment] = field(default_factory=list)


@dataclass(slots=True)
class ChatReply:
    message: str
    actions: List[Dict[str, Any]] = field(default_factory=list)
    function_result: FunctionResult | None = None
    session_id: str | None = None
    error_type: str | None = None

    @property
    def status_code(self) -> int:
        if self.error_type is None:
            return 200
        return _STATUS_BY_ERROR.get(self.error_type, 500)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"message": self.message, "actions": self.actions}
        if self.function_result is not None:
            out["functionResult"] = self.function_result.to_dict()
        if self.session_id is not None:
            out["sessionId"] = self.session_id
        if self.error_type is not None:
            out["errorType"] = self.error_type
        return out


class ChatService:
    def __init__(
        self,
        store: SessionStore,
        orchestrator: ChatOrchestrator,
        monitor: QuotaMonitor | None = None,
        *,
        turn_timeout_s: float | None = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.monitor = monitor
        self.turn_timeout_s = turn_timeout_s

    async def send(self, request: ChatTurnRequest) -> ChatReply:
        if not isinstance(request.message, str) or not request.message:
            return self._fail(INVALID_MESSAGE, "invalid-params")
        try:
            validate_attachments(
                request.attachments,
                self.store.limits.max_attachment_size_bytes,
            )
            session = self._resolve_session(request.session_id)
            user_msg = Message.create(
                "user",
                request.message,
                [to_ref(a) for a in request.attachments],
            )
            with self.store.lock:
                prior = list(session.messages)
                self.store.append_message(session.id, user_msg)
        except ChatError as e:
            return self._fail(str(e), e.error_type)
        self._after_write()

        history = request.messages if request.messages is not None else prior
        turn = ChatTurn(
            message=request.message,
            history=history,
            attachments=request.attachments,
            context=request.context,
            model=request.model,
        )
        try:
            coro = self.orchestrator.run(turn)
            if self.turn_timeout_s is not None:
                result = await asyncio.wait_for(coro, self.turn_timeout_s)
            else:
                result = await coro
        except asyncio.TimeoutError:
            logger.warning("chat turn timed out session=%s", session.id)
            return self._fail(TIMEOUT_FAILURE, "timeout", session.id)
        except ProviderConfigError as e:
            logger.error("llm provider not configured: %s", e)
            return self._fail(NOT_CONFIGURED, e.error_type, session.id)
        except ProviderTimeoutError as e:
            logger.warning("llm request timed out: %s", e)
            return self._fail(TIMEOUT_FAILURE, e.error_type, session.id)
        except ProviderError as e:
            logger.warning("llm request failed: %s", e)
            return self._fail(GENERIC_FAILURE, e.error_type, session.id)
        except ValidationError as e:
            return self._fail(str(e), e.error_type, session.id)

        answer = result.message or GENERIC_FAILURE
        try:
            self.store.append_message(
                session.id, Message.create("assistant", answer)
            )
        except ChatError as e:
            # reply is still returned; only persistence is skipped
            logger.warning("assistant reply not stored: %s", e)
        else:
            self._after_write()
        metrics.inc("chat_turns_total", {"outcome": "ok"})
        return ChatReply(
            message=answer,
            function_result=result.function_result,
            session_id=session.id,
        )

    def _resolve_session(self, session_id: str | None):
        if session_id:
            # the targeted session becomes current so eviction can't pick it
            return self.store.set_current(session_id)
        return self.store.ensure_current()

    def _after_write(self) -> None:
        if self.monitor is not None:
            self.monitor.tick()

    def _fail(
        self, message: str, error_type: str, session_id: str | None = None
    ) -> ChatReply:
        metrics.inc("chat_turns_total", {"outcome": error_type})
        return ChatReply(
            message=message, session_id=session_id, error_type=error_type
        )


__all__ = [
    "ChatTurnRequest",
    "ChatReply",
    "ChatService",
    "INVALID_MESSAGE",
    "NOT_CONFIGURED",
    "GENERIC_FAILURE",
]
