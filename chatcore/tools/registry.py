"""Tool registry: declarative schemas of the domain actions exposed to the LLM.

Parameter kinds form a small tagged union (``kind`` field) instead of free-form
JSON schema dicts. The registry only describes tools; argument checking
happens in ``ActionExecutor`` at execution time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Literal, Union


@dataclass(frozen=True, slots=True)
class StringParam:
    name: str
    description: str
    kind: Literal["string"] = field(default="string", init=False)

    def json_schema(self) -> Dict[str, Any]:
        return {"type": "string", "description": self.description}

    def accepts(self, value: Any) -> bool:
        return isinstance(value, str)


@dataclass(frozen=True, slots=True)
class StringArrayParam:
    name: str
    description: str
    kind: Literal["string_array"] = field(default="string_array", init=False)

    def json_schema(self) -> Dict[str, Any]:
        return {
            "type": "array",
            "items": {"type": "string"},
            "description": self.description,
        }

    def accepts(self, value: Any) -> bool:
        return isinstance(value, list) and all(
            isinstance(v, str) for v in value
        )


@dataclass(frozen=True, slots=True)
class EnumParam:
    name: str
    description: str
    choices: tuple[str, ...]
    kind: Literal["enum"] = field(default="enum", init=False)

    def json_schema(self) -> Dict[str, Any]:
        return {
            "type": "string",
            "enum": list(self.choices),
            "description": self.description,
        }

    def accepts(self, value: Any) -> bool:
        return value in self.choices


ParamSpec = Union[StringParam, StringArrayParam, EnumParam]


@dataclass(frozen=True, slots=True)
class ToolSchema:
    name: str
    description: str
    parameters: tuple[ParamSpec, ...] = ()
    required: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        names = [p.name for p in self.parameters]
        if len(names) != len(set(names)):
            raise ValueError(f"duplicate parameter names in tool {self.name}")
        unknown = set(self.required) - set(names)
        if unknown:
            raise ValueError(
                f"tool {self.name} requires undeclared params: {sorted(unknown)}"
            )

    def param(self, name: str) -> ParamSpec | None:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    def input_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
            "required": list(self.required),
        }

    def to_wire(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema(),
        }


class ToolRegistry:
    """Ordered, name-unique collection of ToolSchema."""

    def __init__(self, tools: Iterable[ToolSchema] = ()) -> None:
        self._tools: Dict[str, ToolSchema] = {}
        for t in tools:
            self.register(t)

    def register(self, schema: ToolSchema) -> None:
        if schema.name in self._tools:
            raise ValueError(f"tool already registered: {schema.name}")
        self._tools[schema.name] = schema

    def get(self, name: str) -> ToolSchema | None:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def to_wire(self) -> List[Dict[str, Any]]:
        return [t.to_wire() for t in self._tools.values()]

    def __iter__(self) -> Iterator[ToolSchema]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools


CREATE_PERSON_CONTACT = ToolSchema(
    name="create_person_contact",
    description=(
        "Create a new person contact in the database with their information "
        "including name, emails, phones, company, and other details"
    ),
    parameters=(
        StringParam("first_name", "First name of the person"),
        StringParam("last_name", "Last name of the person"),
        StringArrayParam("_emails", "Array of email addresses for the person"),
        StringArrayParam("_phones", "Array of phone numbers for the person"),
        StringParam(
            "company_name",
            "Name of the company the person works for "
            "(will be created if it doesn't exist)",
        ),
        StringParam("job_title", "Job title or position of the person"),
        StringParam("city", "City where the person is located"),
        StringParam("state", "State where the person is located"),
        StringParam("linkedin", "LinkedIn profile URL"),
        StringParam(
            "description", "Additional notes or description about the person"
        ),
    ),
)


def default_registry() -> ToolRegistry:
    return ToolRegistry([CREATE_PERSON_CONTACT])


__all__ = [
    "StringParam",
    "StringArrayParam",
    "EnumParam",
    "ParamSpec",
    "ToolSchema",
    "ToolRegistry",
    "CREATE_PERSON_CONTACT",
    "default_registry",
]
