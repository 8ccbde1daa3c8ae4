"""LLM capability boundary: content blocks, provider ABC, Anthropic adapter."""

from .types import (  # noqa: F401
    ChatMessage,
    ContentBlock,
    ImageBlock,
    ModelRequest,
    ModelResponse,
    TextBlock,
    TokenUsage,
    ToolResultBlock,
    ToolUseBlock,
    block_from_wire,
)
from .provider import ModelInfo, ModelProvider  # noqa: F401
from .exceptions import (  # noqa: F401
    ProviderConfigError,
    ProviderError,
    ProviderTimeoutError,
)

__all__ = [
    "ChatMessage",
    "ContentBlock",
    "ImageBlock",
    "ModelRequest",
    "ModelResponse",
    "TextBlock",
    "TokenUsage",
    "ToolResultBlock",
    "ToolUseBlock",
    "block_from_wire",
    "ModelInfo",
    "ModelProvider",
    "ProviderConfigError",
    "ProviderError",
    "ProviderTimeoutError",
]
