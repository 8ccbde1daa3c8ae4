import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from chatcore.config.schemas.llm import LLMConfig
from chatcore.llm import (
    ChatMessage,
    ModelRequest,
    ProviderConfigError,
    ProviderError,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
    block_from_wire,
)
from chatcore.llm.anthropic_provider import AnthropicProvider
from chatcore.llm.factory import build_provider


def _request() -> ModelRequest:
    return ModelRequest(
        model="claude-test",
        max_tokens=16,
        system="sys",
        tools=[],
        messages=[ChatMessage("user", [TextBlock("hi")])],
    )


class _Block:
    def __init__(self, data):
        self._data = data

    def model_dump(self):
        return dict(self._data)


class _FakeMessages:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def test_wire_shapes():
    assert ToolResultBlock("t1", "oops", is_error=True).to_wire() == {
        "type": "tool_result",
        "tool_use_id": "t1",
        "content": "oops",
        "is_error": True,
    }
    wire = _request().to_wire()
    assert wire["messages"] == [
        {"role": "user", "content": [{"type": "text", "text": "hi"}]}
    ]
    assert block_from_wire({"type": "thinking", "thinking": "..."}) is None
    tu = block_from_wire({"type": "tool_use", "id": "a", "name": "n", "input": {"x": 1}})
    assert tu == ToolUseBlock("a", "n", {"x": 1})


def test_factory_defers_missing_key_to_request_time():
    provider = build_provider(LLMConfig(), env={})
    with pytest.raises(ProviderConfigError) as ei:
        asyncio.run(provider.complete(_request()))
    assert "ANTHROPIC_API_KEY" in str(ei.value)


def test_anthropic_response_mapped_to_blocks():
    resp = SimpleNamespace(
        content=[
            _Block({"type": "text", "text": "hello", "citations": None}),
            _Block({"type": "tool_use", "id": "tu", "name": "lookup", "input": {"q": "a"}}),
        ],
        model="claude-test",
        stop_reason="tool_use",
        usage=SimpleNamespace(input_tokens=5, output_tokens=7),
    )
    messages = _FakeMessages(result=resp)
    provider = AnthropicProvider(
        "key", default_model="claude-test", client=SimpleNamespace(messages=messages)
    )
    out = asyncio.run(provider.complete(_request()))
    assert out.first_text == "hello"
    assert out.tool_uses == [ToolUseBlock("tu", "lookup", {"q": "a"})]
    assert out.usage.output_tokens == 7
    assert messages.calls[0]["system"] == "sys"
    assert messages.calls[0]["max_tokens"] == 16


def test_anthropic_errors_become_provider_errors():
    req = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    messages = _FakeMessages(error=anthropic.APIConnectionError(request=req))
    provider = AnthropicProvider(
        "key", default_model="claude-test", client=SimpleNamespace(messages=messages)
    )
    with pytest.raises(ProviderError):
        asyncio.run(provider.complete(_request()))
