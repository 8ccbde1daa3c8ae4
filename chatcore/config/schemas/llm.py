"""LLM config schema.

Only provider selection and request defaults live here. The credential itself
is never part of the YAML; ``api_key_env`` names the environment variable the
provider reads it from.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator, ConfigDict


class LLMConfig(BaseModel):
    provider: str = Field("anthropic", pattern="^(anthropic)$")
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 2048
    api_key_env: str = "ANTHROPIC_API_KEY"
    request_timeout_s: float = 60.0
    # Whole-turn bound (both model calls plus tools); None disables it
    turn_timeout_s: float | None = 120.0
    # Upper bound for parallel tool executions from one model response
    max_parallel_tools: int = 8

    model_config = ConfigDict(extra="forbid")

    @field_validator("max_tokens")
    @classmethod
    def _max_tokens_positive(cls, v: int) -> int:  # noqa: D401
        if v <= 0:
            raise ValueError("max_tokens must be >0")
        return v

    @field_validator("turn_timeout_s")
    @classmethod
    def _turn_timeout_positive(cls, v: float | None) -> float | None:  # noqa: D401
        if v is not None and v <= 0:
            raise ValueError("turn_timeout_s must be >0 or null")
        return v

    @field_validator("max_parallel_tools")
    @classmethod
    def _parallel_positive(cls, v: int) -> int:  # noqa: D401
        if v <= 0:
            raise ValueError("max_parallel_tools must be >0")
        return v
