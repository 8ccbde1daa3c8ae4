"""System prompt + history mapping for the orchestration loop."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from chatcore.llm.types import ChatMessage
from chatcore.sessions.models import Message

VISIBLE_SAMPLE_ROWS = 3

BASE_SYSTEM_PROMPT = """You are a helpful assistant for a contact management application. You can help users manage their contacts by filtering, sorting, navigating, and creating new person contacts.
When users ask to create or add a new person contact, use the create_person_contact function with the provided information. Extract as much relevant information as possible from the user's request.
For other requests, provide helpful responses and suggest specific actions when appropriate.
Guidelines:
- Use the create_person_contact function when users want to add new contacts
- Extract information like name, email, phone, company, job title, location from user requests
- For filters: suggest filter actions with columnId, operator, and value
- For sorting: suggest sort actions with columnId and direction
- For navigation: suggest navigate actions with pathname
- Always provide helpful and contextual responses."""


class PageContext(BaseModel):
    """What the user currently sees in the host application's table view."""

    total_count: int = Field(0, alias="totalCount")
    current_filters: Any = Field(default_factory=list, alias="currentFilters")
    current_sort: Any = Field(default_factory=list, alias="currentSort")
    visible_data: List[Any] = Field(default_factory=list, alias="visibleData")

    model_config = ConfigDict(populate_by_name=True, extra="allow")


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def build_system_prompt(context: PageContext | None = None) -> str:
    if context is None:
        return BASE_SYSTEM_PROMPT
    return (
        BASE_SYSTEM_PROMPT
        + "\n\n## Current Page Context:"
        + f"\n- Total items: {context.total_count}"
        + f"\n- Current filters: {_pretty(context.current_filters)}"
        + f"\n- Current sorting: {_pretty(context.current_sort)}"
        + "\n- Visible data sample: "
        + _pretty(context.visible_data[:VISIBLE_SAMPLE_ROWS])
    )


def map_history(
    history: Sequence[Message | Mapping[str, Any]],
) -> List[ChatMessage]:
    """Prior turns as provider messages; system and empty entries dropped."""
    out: List[ChatMessage] = []
    for item in history:
        if isinstance(item, Message):
            role, content = item.role, item.content
        else:
            role, content = item.get("role"), item.get("content")
        if role not in ("user", "assistant"):
            continue
        if not isinstance(content, str) or not content:
            continue
        out.append(ChatMessage(role=role, content=content))
    return out


def context_from_payload(data: Dict[str, Any] | None) -> PageContext | None:
    if not data:
        return None
    return PageContext.model_validate(data)


__all__ = [
    "BASE_SYSTEM_PROMPT",
    "PageContext",
    "build_system_prompt",
    "map_history",
    "context_from_payload",
]
