"""Widget / storage layout schema."""
from __future__ import annotations

from pydantic import BaseModel, Field


class UIConfig(BaseModel):
    layout_mode: str = Field(
        "floating", pattern="^(floating|sidebar|fullscreen)$"
    )
    # JSON file backing the persisted session blob; None keeps it in memory
    storage_path: str | None = None
    storage_key: str = "chat-store"
