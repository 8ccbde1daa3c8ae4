"""Logging setup driven by the ``logging`` config section.

All loggers in the project are plain stdlib loggers under the ``chatdesk``
namespace; only that subtree gets a handler. The handler renders records
through structlog's ``ProcessorFormatter`` (one JSON object per line for
``format: json``, a console line for ``format: text``). Records still
propagate to the root logger.
"""
from __future__ import annotations

import logging
import sys

import structlog

from chatcore.config.schemas.observability import LoggingConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_HANDLER_NAME = "chatdesk-default"

_PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def build_formatter(fmt: str) -> structlog.stdlib.ProcessorFormatter:
    if fmt == "json":
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors = [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.dev.ConsoleRenderer(colors=False),
        ]
    return structlog.stdlib.ProcessorFormatter(
        processors=processors, foreign_pre_chain=_PRE_CHAIN
    )


def setup_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Attach a single stream handler to the ``chatdesk`` logger (idempotent)."""
    cfg = cfg or LoggingConfig()
    root = logging.getLogger("chatdesk")
    root.setLevel(_LEVELS.get(cfg.level, logging.INFO))
    for h in list(root.handlers):
        if h.get_name() == _HANDLER_NAME:
            root.removeHandler(h)
    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(build_formatter(cfg.format))
    root.addHandler(handler)
    return root


__all__ = ["setup_logging", "build_formatter"]
