import asyncio
import json

import pytest

from chatcore.attachments import Attachment
from chatcore.events import on
from chatcore.llm import (
    ImageBlock,
    ModelInfo,
    ModelProvider,
    ModelRequest,
    ModelResponse,
    ProviderConfigError,
    ProviderError,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from chatcore.orchestration import (
    ChatOrchestrator,
    ChatTurn,
    LoopState,
    PageContext,
)
from chatcore.errors import ValidationError
from chatcore.sessions import Message
from chatcore.tools import ActionExecutor, ActionResult, ToolRegistry, ToolSchema, StringParam


class ScriptedProvider(ModelProvider):
    """Returns queued responses in order and records every request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[ModelRequest] = []

    async def complete(self, request: ModelRequest) -> ModelResponse:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def info(self) -> ModelInfo:
        return ModelInfo(id="scripted", provider="test")


def _registry() -> ToolRegistry:
    return ToolRegistry(
        [
            ToolSchema("lookup", "Look up a record", (StringParam("q", "Query"),)),
            ToolSchema("explode", "Always fails"),
        ]
    )


def _executor(calls=None) -> ActionExecutor:
    ex = ActionExecutor(_registry())

    async def _lookup(params):
        if calls is not None:
            calls.append(params["q"])
        await asyncio.sleep(0)
        return {"found": params["q"]}

    ex.register("lookup", _lookup)
    ex.register("explode", lambda params: ActionResult.fail("X"))
    return ex


def _orch(provider, executor=None) -> ChatOrchestrator:
    executor = executor or _executor()
    return ChatOrchestrator(
        provider, executor, executor.registry, default_model="test-model"
    )


def test_text_only_response_returned_unchanged():
    provider = ScriptedProvider(ModelResponse(content=[TextBlock("Hello there")]))
    result = asyncio.run(_orch(provider).run(ChatTurn(message="hi")))
    assert result.message == "Hello there"
    assert result.function_result is None
    assert len(provider.requests) == 1
    assert result.states == [
        LoopState.BUILDING_REQUEST,
        LoopState.AWAITING_MODEL,
        LoopState.DONE,
    ]
    req = provider.requests[0]
    assert req.model == "test-model"
    assert req.max_tokens == 2048
    assert [t["name"] for t in req.tools] == ["lookup", "explode"]


def test_empty_first_response_falls_back_to_empty_string():
    provider = ScriptedProvider(ModelResponse(content=[]))
    result = asyncio.run(_orch(provider).run(ChatTurn(message="hi")))
    assert result.message == ""


def test_single_failing_tool_still_gets_followup():
    provider = ScriptedProvider(
        ModelResponse(content=[ToolUseBlock("tu_1", "explode", {})]),
        ModelResponse(content=[TextBlock("Sorry, that did not work.")]),
    )
    result = asyncio.run(_orch(provider).run(ChatTurn(message="do it")))
    assert result.message == "Sorry, that did not work."
    assert result.function_result.success is False
    assert result.function_result.error == "All tools failed"
    assert len(provider.requests) == 2
    followup = provider.requests[1].messages
    assert followup[-2].role == "assistant"
    results = followup[-1].content
    assert results == [ToolResultBlock("tu_1", "X", is_error=True)]


def test_parallel_tools_mixed_outcome_reports_success_data():
    calls = []
    provider = ScriptedProvider(
        ModelResponse(
            content=[
                TextBlock("Working on it"),
                ToolUseBlock("tu_a", "explode", {}),
                ToolUseBlock("tu_b", "lookup", {"q": "ada"}),
            ]
        ),
        ModelResponse(content=[TextBlock("Done.")]),
    )
    result = asyncio.run(_orch(provider, _executor(calls)).run(ChatTurn(message="go")))
    assert result.function_result.success is True
    assert result.function_result.data == {"found": "ada"}
    assert calls == ["ada"]
    blocks = provider.requests[1].messages[-1].content
    assert [b.tool_use_id for b in blocks] == ["tu_a", "tu_b"]
    assert json.loads(blocks[1].content) == {"found": "ada"}
    assert result.states[-2:] == [LoopState.AWAITING_MODEL_FOLLOWUP, LoopState.DONE]


def test_followup_tool_use_not_executed_and_fallback_text():
    calls = []
    provider = ScriptedProvider(
        ModelResponse(content=[ToolUseBlock("tu_1", "lookup", {"q": "one"})]),
        ModelResponse(content=[ToolUseBlock("tu_2", "lookup", {"q": "two"})]),
    )
    result = asyncio.run(_orch(provider, _executor(calls)).run(ChatTurn(message="go")))
    assert calls == ["one"]
    assert result.message == "Tools executed successfully!"
    assert len(provider.requests) == 2


def test_unknown_tool_relayed_as_result():
    provider = ScriptedProvider(
        ModelResponse(content=[ToolUseBlock("tu_1", "nope", {})]),
        ModelResponse(content=[TextBlock("I can't do that.")]),
    )
    result = asyncio.run(_orch(provider).run(ChatTurn(message="go")))
    block = provider.requests[1].messages[-1].content[0]
    assert block.content == "Unknown function: nope"
    assert result.function_result.success is False


def test_request_building_history_context_and_attachments():
    provider = ScriptedProvider(ModelResponse(content=[TextBlock("ok")]))
    history = [
        Message.create("system", "hidden"),
        Message.create("user", "earlier"),
        {"role": "assistant", "content": "reply"},
    ]
    ctx = PageContext.model_validate(
        {
            "totalCount": 42,
            "currentFilters": [{"columnId": "city", "value": "Paris"}],
            "currentSort": [],
            "visibleData": [{"n": i} for i in range(10)],
        }
    )
    turn = ChatTurn(
        message="look",
        history=history,
        attachments=[Attachment("p.png", "image/png", 3, b"abc")],
        context=ctx,
        model="override-model",
    )
    asyncio.run(_orch(provider).run(turn))
    req = provider.requests[0]
    assert req.model == "override-model"
    assert "- Total items: 42" in req.system
    assert '"n": 2' in req.system and '"n": 3' not in req.system
    assert [m.role for m in req.messages] == ["user", "assistant", "user"]
    last = req.messages[-1].content
    assert last[0] == TextBlock("look")
    assert isinstance(last[1], ImageBlock)


def test_provider_errors_propagate():
    provider = ScriptedProvider(ProviderConfigError("ANTHROPIC_API_KEY environment variable is not set"))
    with pytest.raises(ProviderConfigError):
        asyncio.run(_orch(provider).run(ChatTurn(message="hi")))
    provider = ScriptedProvider(RuntimeError("socket closed"))
    with pytest.raises(ProviderError):
        asyncio.run(_orch(provider).run(ChatTurn(message="hi")))


def test_empty_message_rejected_before_model_call():
    provider = ScriptedProvider()
    with pytest.raises(ValidationError):
        asyncio.run(_orch(provider).run(ChatTurn(message="")))
    assert provider.requests == []


def test_tool_events_emitted_in_order():
    captured = []
    on(lambda name, payload: captured.append((name, payload)))
    provider = ScriptedProvider(
        ModelResponse(content=[ToolUseBlock("tu_1", "lookup", {"q": "x"})]),
        ModelResponse(content=[TextBlock("fine")]),
    )
    asyncio.run(_orch(provider).run(ChatTurn(message="go")))
    names = [n for n, _ in captured]
    assert names.index("ToolCallPlanned") < names.index("ToolCallResult")
    assert names[-1] == "OrchestrationCompleted"
    done = captured[-1][1]
    assert done["outcome"] == "tools" and done["tool_calls"] == 1
    planned = next(p for n, p in captured if n == "ToolCallPlanned")
    assert len(planned["args_preview_hash"]) == 16


def test_tools_run_concurrently_and_followup_waits_for_all():
    arrived = []
    finished = []
    both_here = asyncio.Event()

    async def _rendezvous(params):
        arrived.append(params["q"])
        if len(arrived) == 2:
            both_here.set()
        # a sequential executor never lets the second call arrive
        await asyncio.wait_for(both_here.wait(), timeout=2)
        finished.append(params["q"])
        return {"found": params["q"]}

    ex = ActionExecutor(_registry())
    ex.register("lookup", _rendezvous)
    ex.register("explode", lambda params: ActionResult.fail("X"))

    class _CheckingProvider(ScriptedProvider):
        async def complete(self, request):
            if self.requests:
                self.finished_at_followup = list(finished)
            return await super().complete(request)

    provider = _CheckingProvider(
        ModelResponse(
            content=[
                ToolUseBlock("tu_a", "lookup", {"q": "a"}),
                ToolUseBlock("tu_b", "lookup", {"q": "b"}),
            ]
        ),
        ModelResponse(content=[TextBlock("both found")]),
    )
    result = asyncio.run(_orch(provider, ex).run(ChatTurn(message="go")))
    assert [c.result.success for c in result.tool_calls] == [True, True]
    assert sorted(provider.finished_at_followup) == ["a", "b"]
    blocks = provider.requests[1].messages[-1].content
    assert [b.tool_use_id for b in blocks] == ["tu_a", "tu_b"]
    assert not any(b.is_error for b in blocks)
