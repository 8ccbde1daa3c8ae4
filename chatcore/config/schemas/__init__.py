"""Per-section pydantic schemas (llm, quota, observability, ui)."""
