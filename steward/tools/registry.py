from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping, Protocol, Type

from pydantic import BaseModel, ValidationError

from ..core.logging import get_logger
from ..schemas.orchestration import ToolResult
from .catalog import is_read_only
from .exceptions import ToolNotFoundError

__all__ = ["ToolDefinition", "ToolDescriptor", "ToolRegistry", "ToolSource"]

logger = get_logger(name=__name__)

ToolExecutor = Callable[[dict[str, Any]], Awaitable[ToolResult | Mapping[str, Any] | Any]]


@dataclass(slots=True)
class ToolDefinition:
    name: str
    description: str
    category: str
    executor: ToolExecutor
    parameters: Type[BaseModel] | None = None
    read_only: bool | None = None

    def __post_init__(self) -> None:
        if self.read_only is None:
            self.read_only = is_read_only(self.name)

    def describe(self) -> "ToolDescriptor":
        return ToolDescriptor(name=self.name, description=self.description, category=self.category)


@dataclass(slots=True, frozen=True)
class ToolDescriptor:
    name: str
    description: str
    category: str


class ToolSource(Protocol):
    """A collection of tools served from outside the process."""

    name: str

    async def list_tools(self) -> list[ToolDescriptor]: ...

    async def call_tool(self, name: str, parameters: dict[str, Any]) -> ToolResult: ...


def coerce_tool_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, Mapping) and "success" in value:
        return ToolResult(
            success=bool(value.get("success")),
            data=value.get("data"),
            message=value.get("message"),
            error=value.get("error"),
        )
    return ToolResult.ok(value)


class ToolRegistry:
    """Registry of local tools plus any external tool sources discovered at runtime."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._sources: list[ToolSource] = []
        self._external: dict[str, tuple[ToolSource, ToolDescriptor]] = {}

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            logger.info("tool_registry_replaced", tool=definition.name)
        self._tools[definition.name] = definition

    def register_many(self, definitions: Iterable[ToolDefinition]) -> None:
        for definition in definitions:
            self.register(definition)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def add_source(self, source: ToolSource) -> None:
        self._sources.append(source)

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools or name in self._external

    def list_available(self) -> list[ToolDescriptor]:
        return [definition.describe() for definition in self._tools.values()]

    def list_by_category(self, category: str) -> list[ToolDescriptor]:
        return [definition.describe() for definition in self._tools.values() if definition.category == category]

    def categories(self) -> list[str]:
        return sorted({definition.category for definition in self._tools.values()})

    async def list_all_available(self) -> list[ToolDescriptor]:
        """Return local tools followed by tools advertised by every reachable external source."""
        descriptors = self.list_available()
        local_names = {descriptor.name for descriptor in descriptors}
        discovered: dict[str, tuple[ToolSource, ToolDescriptor]] = {}
        for source in self._sources:
            try:
                remote = await source.list_tools()
            except Exception as exc:
                logger.warning("tool_source_discovery_failed", source=source.name, error=str(exc))
                continue
            for descriptor in remote:
                if descriptor.name in local_names or descriptor.name in discovered:
                    continue
                discovered[descriptor.name] = (source, descriptor)
        self._external = discovered
        descriptors.extend(descriptor for _, descriptor in discovered.values())
        return descriptors

    async def execute(self, name: str, parameters: Mapping[str, Any] | None = None) -> ToolResult:
        payload = dict(parameters or {})
        definition = self._tools.get(name)
        try:
            if definition is not None:
                return await self._execute_local(definition, payload)
            owner = self._external.get(name)
            if owner is None:
                raise ToolNotFoundError(f"Tool '{name}' not found")
            source, _ = owner
            return coerce_tool_result(await source.call_tool(name, payload))
        except ToolNotFoundError as exc:
            logger.warning("tool_not_found", tool=name)
            return ToolResult.fail(str(exc))
        except Exception as exc:
            logger.exception("tool_execution_failed", tool=name, error=str(exc))
            return ToolResult.fail(str(exc) or exc.__class__.__name__)

    async def _execute_local(self, definition: ToolDefinition, payload: dict[str, Any]) -> ToolResult:
        arguments = payload
        if definition.parameters is not None:
            try:
                validated = definition.parameters.model_validate(payload)
            except ValidationError as exc:
                logger.warning("tool_parameters_invalid", tool=definition.name, errors=exc.errors())
                return ToolResult.fail(f"Invalid parameters for '{definition.name}': {exc.error_count()} error(s)")
            arguments = dict(validated)
        outcome = definition.executor(arguments)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return coerce_tool_result(outcome)
