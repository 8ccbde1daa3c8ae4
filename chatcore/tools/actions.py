"""Action executor: runs a named tool with model-supplied arguments.

``execute`` never raises for tool problems. Unknown names, bad arguments and
handler exceptions all come back as ``ActionResult(success=False, error=...)``
so the orchestration loop can relay them to the model.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Union

from chatcore.errors import ChatError

from .contacts import ContactBook
from .registry import ToolRegistry, ToolSchema, default_registry

logger = logging.getLogger("chatdesk.tools")

ActionHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True, slots=True)
class ActionResult:
    success: bool
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.success:
            out["data"] = self.data
        else:
            out["error"] = self.error
        return out


def check_arguments(schema: ToolSchema, params: Any) -> List[str]:
    """Return human readable problems (empty list when arguments are fine).

    Undeclared keys are ignored; models occasionally add extras.
    """
    if not isinstance(params, dict):
        return [f"arguments for {schema.name} must be an object"]
    problems: List[str] = []
    for name in schema.required:
        if params.get(name) in (None, "", []):
            problems.append(f"missing required parameter: {name}")
    for p in schema.parameters:
        if p.name not in params or params[p.name] is None:
            continue
        if not p.accepts(params[p.name]):
            problems.append(f"invalid value for {p.name} (expected {p.kind})")
    return problems


class ActionExecutor:
    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry
        self._handlers: Dict[str, ActionHandler] = {}

    def register(self, name: str, handler: ActionHandler) -> None:
        if name not in self.registry:
            raise ValueError(f"no tool schema registered for {name}")
        self._handlers[name] = handler

    async def execute(self, name: str, params: Dict[str, Any]) -> ActionResult:
        schema = self.registry.get(name)
        handler = self._handlers.get(name)
        if schema is None or handler is None:
            logger.warning("unknown function requested: %s", name)
            return ActionResult.fail(f"Unknown function: {name}")
        problems = check_arguments(schema, params)
        if problems:
            return ActionResult.fail("; ".join(problems))
        try:
            result = handler(dict(params))
            if inspect.isawaitable(result):
                result = await result
        except ChatError as e:
            return ActionResult.fail(str(e))
        except Exception as e:  # noqa: BLE001
            logger.exception("tool %s raised", name)
            return ActionResult.fail(str(e) or e.__class__.__name__)
        if isinstance(result, ActionResult):
            return result
        return ActionResult.ok(result)


def build_default_executor(
    registry: ToolRegistry | None = None,
    contacts: ContactBook | None = None,
) -> ActionExecutor:
    registry = registry or default_registry()
    book = contacts if contacts is not None else ContactBook()
    executor = ActionExecutor(registry)

    def _create_person(params: Dict[str, Any]) -> Dict[str, Any]:
        return book.create(params).to_dict()

    executor.register("create_person_contact", _create_person)
    return executor


__all__ = [
    "ActionResult",
    "ActionHandler",
    "ActionExecutor",
    "check_arguments",
    "build_default_executor",
]
