"""LLM related exception hierarchy."""
from __future__ import annotations

from chatcore.errors import ChatError


class ProviderError(ChatError):
    """Transient upstream failure (network, rate limit, 5xx).

    Reported to the caller; never retried by the core.
    """

    error_type = "provider-error"


class ProviderTimeoutError(ProviderError):
    error_type = "timeout"


class ProviderConfigError(ChatError):
    """Provider cannot be used at all (missing credential).

    Fatal for the request, distinct from ProviderError in the user message.
    """

    error_type = "config-missing-credential"
