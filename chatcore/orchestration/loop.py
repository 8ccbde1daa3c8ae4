"""Two-call tool orchestration loop.

States::

    BUILDING_REQUEST -> AWAITING_MODEL -> DONE
                                       -> EXECUTING_TOOLS
                                          -> AWAITING_MODEL_FOLLOWUP -> DONE

At most one follow-up call is made. Tool calls in the follow-up response are
not executed; the first text block of that response is the answer. All tool
tasks of the first response finish before the follow-up request is built.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from time import perf_counter
from typing import Any, Dict, List, Mapping, Sequence

from chatcore import metrics
from chatcore.attachments import Attachment, encode
from chatcore.errors import ChatError, ValidationError, map_exception
from chatcore.events import (
    OrchestrationCompleted,
    OrchestrationStateChanged,
    ToolCallPlanned,
    ToolCallResult,
    emit,
)
from chatcore.llm.exceptions import ProviderError
from chatcore.llm.provider import ModelProvider
from chatcore.llm.types import (
    ChatMessage,
    ContentBlock,
    ModelRequest,
    ModelResponse,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from chatcore.sessions.models import Message
from chatcore.tools.actions import ActionExecutor, ActionResult
from chatcore.tools.registry import ToolRegistry

from .prompt import PageContext, build_system_prompt, map_history

logger = logging.getLogger("chatdesk.orchestration")

TOOLS_DONE_FALLBACK = "Tools executed successfully!"
ALL_TOOLS_FAILED = "All tools failed"


class LoopState(str, Enum):
    BUILDING_REQUEST = "building_request"
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    AWAITING_MODEL_FOLLOWUP = "awaiting_model_followup"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class ChatTurn:
    message: str
    history: Sequence[Message | Mapping[str, Any]] = ()
    attachments: Sequence[Attachment] = ()
    context: PageContext | None = None
    model: str | None = None


@dataclass(frozen=True, slots=True)
class FunctionResult:
    success: bool
    data: Any = None
    error: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            out["data"] = self.data
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    tool_use_id: str
    name: str
    input: Dict[str, Any]
    result: ActionResult
    latency_ms: int


@dataclass(slots=True)
class TurnResult:
    request_id: str
    model: str
    message: str
    function_result: FunctionResult | None = None
    tool_calls: List[ToolCallRecord] = field(default_factory=list)
    states: List[LoopState] = field(default_factory=list)


def _args_hash(args: Any) -> str:
    canonical = json.dumps(args, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _result_content(result: ActionResult) -> str:
    if result.success:
        return json.dumps(result.data, ensure_ascii=False, default=str)
    return result.error or "Unknown error"


class ChatOrchestrator:
    def __init__(
        self,
        provider: ModelProvider,
        executor: ActionExecutor,
        registry: ToolRegistry,
        *,
        default_model: str,
        max_tokens: int = 2048,
        max_parallel_tools: int = 8,
    ) -> None:
        self.provider = provider
        self.executor = executor
        self.registry = registry
        self.default_model = default_model
        self.max_tokens = max_tokens
        self.max_parallel_tools = max_parallel_tools

    async def run(self, turn: ChatTurn) -> TurnResult:
        """Run one user turn; raises ProviderError / ProviderConfigError."""
        if not isinstance(turn.message, str) or not turn.message:
            raise ValidationError("Invalid message content")
        request_id = uuid.uuid4().hex
        model = turn.model or self.default_model
        result = TurnResult(request_id=request_id, model=model, message="")
        state = LoopState.BUILDING_REQUEST
        result.states.append(state)
        t0 = perf_counter()

        def _to(new: LoopState) -> None:
            nonlocal state
            emit(
                OrchestrationStateChanged(
                    request_id=request_id,
                    from_state=state.value,
                    to_state=new.value,
                )
            )
            logger.debug("orchestration %s %s -> %s", request_id, state.value, new.value)
            state = new
            result.states.append(new)

        try:
            system = build_system_prompt(turn.context)
            user_blocks: List[ContentBlock] = [TextBlock(text=turn.message)]
            user_blocks.extend(encode(a) for a in turn.attachments)
            messages = map_history(turn.history)
            messages.append(ChatMessage(role="user", content=user_blocks))
            tools = self.registry.to_wire()

            _to(LoopState.AWAITING_MODEL)
            first = await self._call(model, system, tools, messages, "initial")
            tool_uses = first.tool_uses
            if not tool_uses:
                result.message = first.first_text or ""
                _to(LoopState.DONE)
                self._completed(result, "text", t0)
                return result

            _to(LoopState.EXECUTING_TOOLS)
            records = await self._run_tools(request_id, tool_uses)
            result.tool_calls = records
            messages.append(ChatMessage(role="assistant", content=list(first.content)))
            messages.append(
                ChatMessage(
                    role="user",
                    content=[
                        ToolResultBlock(
                            tool_use_id=r.tool_use_id,
                            content=_result_content(r.result),
                            is_error=not r.result.success,
                        )
                        for r in records
                    ],
                )
            )

            _to(LoopState.AWAITING_MODEL_FOLLOWUP)
            followup = await self._call(model, system, tools, messages, "followup")
            result.message = followup.first_text or TOOLS_DONE_FALLBACK
            first_ok = next((r for r in records if r.result.success), None)
            if first_ok is not None:
                result.function_result = FunctionResult(
                    success=True, data=first_ok.result.data
                )
            else:
                result.function_result = FunctionResult(
                    success=False, error=ALL_TOOLS_FAILED
                )
            _to(LoopState.DONE)
            self._completed(result, "tools", t0)
            return result
        except Exception as e:
            _to(LoopState.FAILED)
            self._completed(result, "error", t0, error_type=map_exception(e, "model"))
            raise

    async def _call(
        self,
        model: str,
        system: str,
        tools: List[Dict[str, Any]],
        messages: List[ChatMessage],
        phase: str,
    ) -> ModelResponse:
        request = ModelRequest(
            model=model,
            max_tokens=self.max_tokens,
            system=system,
            tools=tools,
            messages=list(messages),
        )
        with metrics.timed("llm_request_latency_ms", {"phase": phase}):
            try:
                return await self.provider.complete(request)
            except ChatError:
                raise
            except Exception as e:  # noqa: BLE001
                logger.exception("provider failed outside its error contract")
                raise ProviderError(f"model request failed: {e}") from e

    async def _run_tools(
        self, request_id: str, tool_uses: List[ToolUseBlock]
    ) -> List[ToolCallRecord]:
        sem = asyncio.Semaphore(self.max_parallel_tools)

        async def _one(seq: int, call: ToolUseBlock) -> ToolCallRecord:
            emit(
                ToolCallPlanned(
                    request_id=request_id,
                    tool=call.name,
                    tool_use_id=call.id,
                    args_preview_hash=_args_hash(call.input),
                    seq=seq,
                )
            )
            t0 = perf_counter()
            async with sem:
                try:
                    res = await self.executor.execute(call.name, call.input)
                except Exception as e:  # noqa: BLE001
                    logger.exception("executor raised for %s", call.name)
                    res = ActionResult.fail(str(e) or e.__class__.__name__)
            latency = int((perf_counter() - t0) * 1000)
            if res.success:
                error_type = None
            elif res.error and res.error.startswith("Unknown function"):
                error_type = "unknown-function"
            else:
                error_type = "tool-error"
            emit(
                ToolCallResult(
                    request_id=request_id,
                    tool=call.name,
                    tool_use_id=call.id,
                    status="ok" if res.success else "error",
                    latency_ms=latency,
                    seq=seq,
                    error_type=error_type,
                    message=None if res.success else res.error,
                )
            )
            return ToolCallRecord(
                tool_use_id=call.id,
                name=call.name,
                input=dict(call.input),
                result=res,
                latency_ms=latency,
            )

        return list(
            await asyncio.gather(*(_one(i, c) for i, c in enumerate(tool_uses)))
        )

    def _completed(
        self,
        result: TurnResult,
        outcome: str,
        t0: float,
        *,
        error_type: str | None = None,
    ) -> None:
        emit(
            OrchestrationCompleted(
                request_id=result.request_id,
                model_id=result.model,
                outcome=outcome,
                tool_calls=len(result.tool_calls),
                latency_ms=int((perf_counter() - t0) * 1000),
                error_type=error_type,
            )
        )


__all__ = [
    "LoopState",
    "ChatTurn",
    "FunctionResult",
    "ToolCallRecord",
    "TurnResult",
    "ChatOrchestrator",
    "TOOLS_DONE_FALLBACK",
    "ALL_TOOLS_FAILED",
]
