"""Pytest configuration ensuring project root is importable.

Adds repository root and ``src`` to sys.path explicitly to avoid
interpreter/path quirks, and isolates global config / metrics / listener
state between tests.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _isolate_config_env():  # noqa: D401
    """Ensure global config/env side effects do not leak between tests.

    - Clear aggregated config cache between tests
    - Restore CHATDESK_CONFIG_DIR to original value
    - Reset in-process metrics, bus handlers and any-subscribers
    """
    from chatcore import metrics
    from chatcore.config import clear_config_cache
    from chatcore.eventbus import get_bus
    from chatcore.events import reset_listeners_for_tests

    prev = os.environ.get("CHATDESK_CONFIG_DIR")
    clear_config_cache()
    metrics.reset_for_tests()
    try:
        yield
    finally:
        clear_config_cache()
        reset_listeners_for_tests()
        get_bus().reset_for_tests()
        if prev is None:
            os.environ.pop("CHATDESK_CONFIG_DIR", None)
        else:
            os.environ["CHATDESK_CONFIG_DIR"] = prev
