"""chatcore: quota-bounded conversation store + tool-calling orchestration.

Subpackages:
    sessions       session models, store, persistence, quota monitor
    tools          declarative tool schemas + default action executor
    llm            provider boundary (ABC, content blocks, Anthropic adapter)
    orchestration  two-phase tool-calling loop
    config         YAML/env configuration with pydantic validation

HTTP transport lives in the separate ``chatdesk`` package; nothing here
imports it.
"""

__version__ = "0.3.0"
