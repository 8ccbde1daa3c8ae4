"""ModelProvider interface.

The orchestration loop talks to the model only through this ABC; tests plug
in scripted fakes, production uses AnthropicProvider. Implementations must
not do network I/O on construction.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict

from .types import ModelRequest, ModelResponse


@dataclass(frozen=True)
class ModelInfo:
    id: str
    provider: str
    capabilities: tuple[str, ...] = ("chat", "tools", "vision")
    metadata: Dict[str, Any] | None = None


class ModelProvider(ABC):
    @abstractmethod
    async def complete(self, request: ModelRequest) -> ModelResponse:
        """Run one non-streaming request; raise ProviderError on failure."""

    @abstractmethod
    def info(self) -> ModelInfo:
        """Return static provider information."""

    async def aclose(self) -> None:  # optional hook
        """Release network resources (default no-op)."""
        return None
