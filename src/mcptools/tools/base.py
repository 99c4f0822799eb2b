"""Toolset building blocks — argument models, schema generation, registration.

Each domain module declares one :class:`ToolsetSpec` and decorates its
functions with :meth:`ToolsetSpec.tool`.  The argument model of a tool is
the single source of both its ``inputSchema`` and its runtime validation,
so a handler never sees an untyped argument map.

Usage::

    math_toolset = ToolsetSpec("math", "math-tools-server", "1.0.0", default_port=3002)

    class CalculateArgs(ToolArgs):
        expression: str = Field(description="Mathematical expression to evaluate")

    @math_toolset.tool("math_calculate", "Safely evaluate mathematical expressions")
    def calculate(args: CalculateArgs) -> ToolResult:
        ...
"""

from __future__ import annotations

import inspect
import typing
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from mcp import types
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from mcptools.protocol.models import ToolResult
from mcptools.protocol.registry import ToolRegistry

ArgsT = TypeVar("ArgsT", bound="ToolArgs")

_MAX_SAFE_INTEGER = 2**53


class ToolArgs(BaseModel):
    """Base class for tool argument models.

    Fields are declared in snake_case and exposed in camelCase, matching
    the argument names clients send.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ArgumentError(ValueError):
    """Arguments did not match the tool's argument model."""

    def __init__(self, tool_name: str, exc: ValidationError) -> None:
        self.tool_name = tool_name
        self.errors = exc.errors()
        details = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or '(root)'}: {err['msg']}"
            for err in self.errors
        )
        super().__init__(f"Invalid arguments: {details}")


@dataclass(frozen=True)
class ToolDef(Generic[ArgsT]):
    """One tool: name, description, argument model, and implementation."""

    name: str
    description: str
    args_model: type[ArgsT]
    func: Callable[[ArgsT], ToolResult]

    def descriptor(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            description=self.description,
            inputSchema=input_schema(self.args_model),
        )

    def __call__(self, arguments: dict[str, Any]) -> ToolResult:
        try:
            args = self.args_model.model_validate(arguments)
        except ValidationError as exc:
            raise ArgumentError(self.name, exc) from exc
        return self.func(args)


@dataclass
class ToolsetSpec:
    """Everything that varies between the tool servers.

    ``domain`` is the CLI name (``regex``, ``math``...), ``server_name`` and
    ``version`` are advertised during ``initialize``, and ``default_port``
    applies when no port is configured.
    """

    domain: str
    server_name: str
    version: str
    default_port: int
    tools: list[ToolDef[Any]] = field(default_factory=list)

    def tool(
        self, name: str, description: str
    ) -> Callable[[Callable[[ArgsT], ToolResult]], Callable[[ArgsT], ToolResult]]:
        """Decorator that adds a function to this toolset.

        The argument model is taken from the annotation of the function's
        single parameter.
        """

        def decorator(func: Callable[[ArgsT], ToolResult]) -> Callable[[ArgsT], ToolResult]:
            args_model = _args_model_of(func)
            self.tools.append(ToolDef(name, description, args_model, func))
            return func

        return decorator

    def register(self, registry: ToolRegistry) -> None:
        """Register every tool of this set, in declaration order."""
        for tool in self.tools:
            registry.register(tool.descriptor(), tool)

    def get(self, name: str) -> ToolDef[Any]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        msg = f"Unknown tool: {name}"
        raise KeyError(msg)


def _args_model_of(func: Callable[..., Any]) -> type[ToolArgs]:
    hints = typing.get_type_hints(func)
    params = list(inspect.signature(func).parameters)
    if len(params) != 1 or params[0] not in hints:
        msg = f"{func.__name__} must take exactly one annotated ToolArgs parameter"
        raise TypeError(msg)
    model = hints[params[0]]
    if not (isinstance(model, type) and issubclass(model, ToolArgs)):
        msg = f"{func.__name__}: {model!r} is not a ToolArgs subclass"
        raise TypeError(msg)
    return model


def as_number(value: float) -> float | int:
    """Render integral doubles as ``int`` so they serialize without ``.0``."""
    if isinstance(value, float) and value.is_integer() and abs(value) < _MAX_SAFE_INTEGER:
        return int(value)
    return value


# ---------------------------------------------------------------------------
# JSON schema
# ---------------------------------------------------------------------------


def input_schema(model: type[BaseModel]) -> dict[str, Any]:
    """Return a self-contained JSON schema for *model*.

    ``$ref`` pointers are inlined, ``title`` keys dropped and
    ``Optional[X]`` collapsed to ``X``.
    """
    raw = model.model_json_schema(by_alias=True)
    defs = raw.pop("$defs", {})
    schema = _clean(raw, defs)
    schema.setdefault("properties", {})
    schema["type"] = "object"
    return schema


def _clean(node: Any, defs: dict[str, Any]) -> Any:
    if isinstance(node, list):
        return [_clean(item, defs) for item in node]
    if not isinstance(node, dict):
        return node

    if "$ref" in node:
        target = defs[node["$ref"].rsplit("/", 1)[-1]]
        merged = {**target, **{k: v for k, v in node.items() if k != "$ref"}}
        return _clean(merged, defs)

    if "anyOf" in node:
        branches = [b for b in node["anyOf"] if b != {"type": "null"}]
        if len(branches) == 1:
            rest = {k: v for k, v in node.items() if k != "anyOf"}
            node = {**branches[0], **rest}
            if node.get("default", 0) is None:
                del node["default"]

    cleaned: dict[str, Any] = {}
    for key, value in node.items():
        if key == "title" and not isinstance(value, dict):
            continue
        if key == "properties":
            cleaned[key] = {name: _clean(prop, defs) for name, prop in value.items()}
        else:
            cleaned[key] = _clean(value, defs)
    return cleaned
