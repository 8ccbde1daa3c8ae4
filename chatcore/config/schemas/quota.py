"""Quota limits + monitor policy schema.

Defaults mirror the product constants: 4 MiB storage, 10 sessions, 50
messages per session, 1 MiB per attachment; warn at 90% (hourly) and 95%
(half-hourly); evict 2 sessions per batch; poll every 30 s.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, ConfigDict, model_validator


class QuotaLimitsConfig(BaseModel):
    max_storage_size_bytes: int = Field(4 * 1024 * 1024, gt=0)
    max_sessions: int = Field(10, gt=0)
    max_messages_per_session: int = Field(50, gt=0)
    max_attachment_size_bytes: int = Field(1024 * 1024, gt=0)

    model_config = ConfigDict(extra="forbid")


class QuotaThresholdConfig(BaseModel):
    percentage: float = Field(..., gt=0, le=100)
    suppress_s: float = Field(..., ge=0)

    model_config = ConfigDict(extra="forbid")


class QuotaPolicyConfig(BaseModel):
    soft: QuotaThresholdConfig = QuotaThresholdConfig(
        percentage=90.0, suppress_s=3600.0
    )
    critical: QuotaThresholdConfig = QuotaThresholdConfig(
        percentage=95.0, suppress_s=1800.0
    )
    eviction_batch_size: int = Field(2, gt=0)
    poll_interval_s: float = Field(30.0, gt=0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _ordered(self) -> "QuotaPolicyConfig":  # noqa: D401
        if self.critical.percentage < self.soft.percentage:
            raise ValueError(
                "critical threshold must not be below soft threshold"
            )
        return self


class QuotaConfig(BaseModel):
    limits: QuotaLimitsConfig = QuotaLimitsConfig()
    policy: QuotaPolicyConfig = QuotaPolicyConfig()

    model_config = ConfigDict(extra="forbid")
