"""Configuration loading & validation.

Precedence (last wins): base.yaml → overrides.local.yaml → ENV (CHATDESK__*).

Each top-level section is validated by its own pydantic schema
(`chatcore.config.schemas.*`); unknown sections and unknown keys inside a
section are rejected. Cross-field bounds that a single schema cannot see are
checked in `_normalize_and_validate`.
"""
from __future__ import annotations

import logging
import os
import pathlib
import threading
from functools import lru_cache
from typing import Any, Dict, Type

import yaml
from chatcore import metrics
from chatcore.errors import validate_error_type
from pydantic import BaseModel, ConfigDict

from .schemas.llm import LLMConfig
from .schemas.quota import QuotaConfig
from .schemas.observability import MetricsConfig, LoggingConfig
from .schemas.ui import UIConfig

logger = logging.getLogger("chatdesk.config")


class AggregatedConfig(BaseModel):
    schema_version: int = 1
    llm: LLMConfig = LLMConfig()
    quota: QuotaConfig = QuotaConfig()
    metrics: MetricsConfig = MetricsConfig()
    logging: LoggingConfig = LoggingConfig()
    ui: UIConfig = UIConfig()

    model_config = ConfigDict(extra="forbid")


DEFAULT_CONFIG_DIR = "configs"
ENV_PREFIX = "CHATDESK__"

SUB_SCHEMA_CLASSES: Dict[str, Type[BaseModel]] = {
    "llm": LLMConfig,
    "quota": QuotaConfig,
    "metrics": MetricsConfig,
    "logging": LoggingConfig,
    "ui": UIConfig,
}


class ConfigError(Exception):
    pass


def _load_yaml_if_exists(path: pathlib.Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merge_dict(
    base: Dict[str, Any], override: Dict[str, Any]
) -> Dict[str, Any]:
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            base[k] = _merge_dict(base[k], v)
        else:
            base[k] = v
    return base


def _coerce_env_value(value: str) -> Any:
    if value.lower() in {"true", "false"}:
        return value.lower() == "true"
    if value.lower() in {"null", "none"}:
        return None
    try:
        return int(value)
    except ValueError:
        try:
            return float(value)
        except ValueError:
            return value


def _apply_env(cfg: Dict[str, Any]) -> None:
    prefix_len = len(ENV_PREFIX)
    for env_key, value in os.environ.items():
        if not env_key.startswith(ENV_PREFIX):
            continue
        path_parts = env_key[prefix_len:].lower().split("__")
        target = cfg
        for part in path_parts[:-1]:
            if part not in target or not isinstance(target[part], dict):
                target[part] = {}
            target = target[part]
        target[path_parts[-1]] = _coerce_env_value(value)
        dotted_path = ".".join(path_parts)
        metrics.inc("env_override_total", {"path": dotted_path})
        logger.info("config env override path=%s source=env", dotted_path)


_lock = threading.Lock()


def _resolve_config_dir() -> pathlib.Path:
    """Resolve config directory each call honoring env var changes."""
    return pathlib.Path(os.getenv("CHATDESK_CONFIG_DIR", DEFAULT_CONFIG_DIR))


def _validate_sub_schemas(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Validate each known section via its schema class."""
    unknown = sorted(
        k for k in raw if k not in SUB_SCHEMA_CLASSES and k != "schema_version"
    )
    if unknown:
        metrics.inc(
            "config_validation_errors_total",
            {"path": ",".join(unknown), "code": "config-invalid"},
        )
        raise ConfigError(f"unknown config sections: {', '.join(unknown)}")
    validated: Dict[str, Any] = {}
    for name, cls in SUB_SCHEMA_CLASSES.items():
        if name in raw:
            try:
                validated[name] = cls.model_validate(raw[name] or {})
            except Exception as e:  # noqa: BLE001
                metrics.inc(
                    "config_validation_errors_total",
                    {"path": name, "code": "config-invalid"},
                )
                raise ConfigError(
                    f"Validation failed for section '{name}': {e}"
                ) from e
    return validated


def _normalize_and_validate(agg: AggregatedConfig) -> None:
    """Cross-section bounds.

    Validations (error → raise):
      - quota.limits.max_attachment_size_bytes <= max_storage_size_bytes
      - quota.policy.eviction_batch_size <= quota.limits.max_sessions
    """
    errors: list[tuple[str, str, str]] = []  # (path, code, msg)
    limits = agg.quota.limits
    if limits.max_attachment_size_bytes > limits.max_storage_size_bytes:
        errors.append(
            (
                "quota.limits.max_attachment_size_bytes",
                "config-out-of-range",
                "must not exceed max_storage_size_bytes",
            )
        )
    if agg.quota.policy.eviction_batch_size > limits.max_sessions:
        errors.append(
            (
                "quota.policy.eviction_batch_size",
                "config-out-of-range",
                "must not exceed quota.limits.max_sessions",
            )
        )
    if errors:
        for path, code, _ in errors:
            validate_error_type(code)
            metrics.inc(
                "config_validation_errors_total",
                {"path": path, "code": code},
            )
        details = ", ".join(f"{p}:{c}:{m}" for p, c, m in errors)
        raise ConfigError(f"config validation failed: {details}")


@lru_cache(maxsize=1)
def get_config() -> AggregatedConfig:  # noqa: D401
    with _lock:
        cfg_dir = _resolve_config_dir()
        base_cfg = _load_yaml_if_exists(cfg_dir / "base.yaml")
        overrides_cfg = _load_yaml_if_exists(cfg_dir / "overrides.local.yaml")
        merged = _merge_dict(base_cfg, overrides_cfg)
        _apply_env(merged)
        validated_sub = _validate_sub_schemas(merged)
        try:
            agg = AggregatedConfig(
                schema_version=merged.get("schema_version", 1),
                **validated_sub,
            )
        except Exception as e:  # noqa: BLE001
            raise ConfigError(str(e)) from e
        _normalize_and_validate(agg)
        return agg


def clear_config_cache() -> None:
    """Clear cached config (primarily for tests)."""
    get_config.cache_clear()


def as_dict() -> Dict[str, Any]:
    return get_config().model_dump()
