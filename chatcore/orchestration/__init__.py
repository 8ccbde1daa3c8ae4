"""Tool-calling orchestration (prompt assembly + two-call state machine)."""

from .prompt import (  # noqa: F401
    BASE_SYSTEM_PROMPT,
    PageContext,
    build_system_prompt,
    context_from_payload,
    map_history,
)
from .loop import (  # noqa: F401
    ALL_TOOLS_FAILED,
    TOOLS_DONE_FALLBACK,
    ChatOrchestrator,
    ChatTurn,
    FunctionResult,
    LoopState,
    ToolCallRecord,
    TurnResult,
)

__all__ = [
    "BASE_SYSTEM_PROMPT",
    "PageContext",
    "build_system_prompt",
    "context_from_payload",
    "map_history",
    "ALL_TOOLS_FAILED",
    "TOOLS_DONE_FALLBACK",
    "ChatOrchestrator",
    "ChatTurn",
    "FunctionResult",
    "LoopState",
    "ToolCallRecord",
    "TurnResult",
]
