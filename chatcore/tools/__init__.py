"""Tool schemas and the action executor."""

from .registry import (  # noqa: F401
    CREATE_PERSON_CONTACT,
    EnumParam,
    StringArrayParam,
    StringParam,
    ToolRegistry,
    ToolSchema,
    default_registry,
)
from .actions import (  # noqa: F401
    ActionExecutor,
    ActionResult,
    build_default_executor,
    check_arguments,
)
from .contacts import Contact, ContactBook  # noqa: F401

__all__ = [
    "CREATE_PERSON_CONTACT",
    "EnumParam",
    "StringArrayParam",
    "StringParam",
    "ToolRegistry",
    "ToolSchema",
    "default_registry",
    "ActionExecutor",
    "ActionResult",
    "build_default_executor",
    "check_arguments",
    "Contact",
    "ContactBook",
]
