"""Provider construction from the ``llm`` config section."""
from __future__ import annotations

import os
from typing import Mapping

from chatcore.config.schemas.llm import LLMConfig

from .anthropic_provider import AnthropicProvider
from .provider import ModelProvider


def build_provider(
    cfg: LLMConfig, env: Mapping[str, str] | None = None
) -> ModelProvider:
    """Provider for ``cfg.provider``; the key is read from ``cfg.api_key_env``."""
    env = os.environ if env is None else env
    if cfg.provider == "anthropic":
        return AnthropicProvider(
            env.get(cfg.api_key_env) or None,
            default_model=cfg.model,
            timeout_s=cfg.request_timeout_s,
            api_key_env=cfg.api_key_env,
        )
    raise ValueError(f"unsupported llm provider: {cfg.provider}")
