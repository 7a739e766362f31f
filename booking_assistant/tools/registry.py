"""Registry and dispatcher for the capability functions the LLM may call.

Each tool is a :class:`ToolSpec`: a name, a description, a pydantic model
describing its arguments and a handler (sync or async).  Specs are
checked once, when they are registered; the dispatcher then only has to
look the name up, validate the arguments and run the handler.

Dispatch contract:

* unknown tool name            → :class:`UnknownToolError` is raised
* arguments that are not JSON  → ``{"error": ...}`` payload
  or fail validation
* handler raises               → ``{"error": ...}`` payload

Error payloads are ordinary tool results: they go back to the model so it
can explain the problem to the user.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

_TOOL_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")


class ToolError(Exception):
    """Base class for failures to dispatch a tool call."""


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Function {name} not implemented")


class ToolArgumentsError(ToolError):
    """The call's arguments are not valid JSON or do not match the schema."""


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[..., Any]

    def to_schema(self) -> dict[str, Any]:
        """OpenAI-style function schema, accepted by ``bind_tools``."""
        parameters = self.args_schema.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    """Name → :class:`ToolSpec` mapping, in registration order."""

    def __init__(self, specs: list[ToolSpec] | None = None) -> None:
        self._specs: dict[str, ToolSpec] = {}
        for spec in specs or []:
            self.register(spec)

    def register(self, spec: ToolSpec) -> None:
        if not _TOOL_NAME_RE.match(spec.name):
            raise ValueError(f"Invalid tool name: {spec.name!r}")
        if spec.name in self._specs:
            raise ValueError(f"Tool {spec.name!r} is already registered")
        if not (isinstance(spec.args_schema, type) and issubclass(spec.args_schema, BaseModel)):
            raise TypeError(f"Tool {spec.name!r}: args_schema must be a pydantic model")
        if not callable(spec.handler):
            raise TypeError(f"Tool {spec.name!r}: handler is not callable")
        self._specs[spec.name] = spec

    def get(self, name: str) -> ToolSpec | None:
        return self._specs.get(name)

    def schemas(self) -> list[dict[str, Any]]:
        return [spec.to_schema() for spec in self._specs.values()]

    @property
    def names(self) -> list[str]:
        return list(self._specs)

    def __len__(self) -> int:
        return len(self._specs)

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._specs.values())


def parse_arguments(spec: ToolSpec, arguments: dict[str, Any] | str | None) -> BaseModel:
    """Decode (if needed) and validate a call's arguments against *spec*."""
    if arguments is None or arguments == "":
        arguments = {}
    if isinstance(arguments, str):
        try:
            arguments = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(f"Invalid JSON arguments for {spec.name}: {exc}") from exc
    if not isinstance(arguments, dict):
        raise ToolArgumentsError(f"Arguments for {spec.name} must be a JSON object")
    try:
        return spec.args_schema.model_validate(arguments)
    except ValidationError as exc:
        raise ToolArgumentsError(f"Invalid arguments for {spec.name}: {exc}") from exc


def _jsonable(result: Any) -> Any:
    if isinstance(result, BaseModel):
        return result.model_dump(mode="json", exclude_none=True)
    return result


class ToolDispatcher:
    """Routes model-issued calls to their registered handlers."""

    def __init__(self, registry: ToolRegistry) -> None:
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def invoke(self, name: str, arguments: dict[str, Any] | str | None) -> Any:
        """Run tool *name* and return its JSON-serialisable result.

        Raises:
            UnknownToolError: no tool is registered under *name*.
        """
        spec = self._registry.get(name)
        if spec is None:
            raise UnknownToolError(name)

        try:
            args = parse_arguments(spec, arguments)
        except ToolArgumentsError as exc:
            logger.warning("Rejected call to %s: %s", name, exc)
            return {"error": str(exc)}

        kwargs = dict(args)
        logger.info("Calling function: %s %s", name, kwargs)
        try:
            if inspect.iscoroutinefunction(spec.handler):
                result = await spec.handler(**kwargs)
            else:
                result = await asyncio.to_thread(spec.handler, **kwargs)
        except Exception as exc:
            logger.error("Tool %s failed: %s", name, exc)
            return {"error": str(exc)}
        return _jsonable(result)
