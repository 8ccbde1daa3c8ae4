"""Observability schemas (metrics + logging) extracted for modularity."""
from __future__ import annotations

from pydantic import BaseModel, Field


class MetricsConfig(BaseModel):
    expose_endpoint: bool = True


class LoggingConfig(BaseModel):
    level: str = Field("info", pattern="^(debug|info|warn|error)$")
    format: str = Field("text", pattern="^(json|text)$")
