"""Content blocks and request/response shapes at the LLM boundary.

Blocks are plain frozen dataclasses; ``to_wire()`` renders the Messages-API
dict form and ``block_from_wire`` parses it back. Only ``text`` and
``tool_use`` are expected in model output; ``image`` and ``tool_result`` only
travel towards the model.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


@dataclass(frozen=True, slots=True)
class TextBlock:
    text: str

    def to_wire(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True, slots=True)
class ImageBlock:
    media_type: str
    data: str  # base64

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": self.media_type,
                "data": self.data,
            },
        }


@dataclass(frozen=True, slots=True)
class ToolUseBlock:
    id: str
    name: str
    input: Dict[str, Any] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": dict(self.input),
        }


@dataclass(frozen=True, slots=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False

    def to_wire(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
        }
        if self.is_error:
            data["is_error"] = True
        return data


ContentBlock = Union[TextBlock, ImageBlock, ToolUseBlock, ToolResultBlock]


def block_from_wire(data: Dict[str, Any]) -> ContentBlock | None:
    """Parse one wire block; unknown kinds (e.g. thinking) yield None."""
    kind = data.get("type")
    if kind == "text":
        return TextBlock(text=data.get("text") or "")
    if kind == "tool_use":
        raw_input = data.get("input")
        return ToolUseBlock(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            input=raw_input if isinstance(raw_input, dict) else {},
        )
    if kind == "image":
        src = data.get("source") or {}
        return ImageBlock(
            media_type=src.get("media_type", ""), data=src.get("data", "")
        )
    if kind == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(data.get("tool_use_id", "")),
            content=str(data.get("content", "")),
            is_error=bool(data.get("is_error", False)),
        )
    return None


@dataclass(slots=True)
class ChatMessage:
    role: str  # user|assistant
    content: Union[str, List[ContentBlock]]

    def to_wire(self) -> Dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {
            "role": self.role,
            "content": [b.to_wire() for b in self.content],
        }


@dataclass(slots=True)
class ModelRequest:
    model: str
    max_tokens: int
    system: str
    tools: List[Dict[str, Any]]
    messages: List[ChatMessage]

    def to_wire(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": self.system,
            "tools": self.tools,
            "messages": [m.to_wire() for m in self.messages],
        }


@dataclass(slots=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class ModelResponse:
    content: List[ContentBlock]
    model: str = ""
    stop_reason: str | None = None
    usage: TokenUsage | None = None

    @property
    def tool_uses(self) -> List[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]

    @property
    def first_text(self) -> str | None:
        for b in self.content:
            if isinstance(b, TextBlock):
                return b.text
        return None


__all__ = [
    "TextBlock",
    "ImageBlock",
    "ToolUseBlock",
    "ToolResultBlock",
    "ContentBlock",
    "block_from_wire",
    "ChatMessage",
    "ModelRequest",
    "ModelResponse",
    "TokenUsage",
]
