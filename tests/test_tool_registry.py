from __future__ import annotations

from typing import Any

import pytest
from pydantic import BaseModel

from steward.schemas.orchestration import ToolResult
from steward.tools.registry import ToolDefinition, ToolDescriptor, ToolRegistry, coerce_tool_result


class EventLookup(BaseModel):
    query: str
    max_results: int = 10


class StaticSource:
    def __init__(self, name: str, tools: list[ToolDescriptor], *, fail_listing: bool = False) -> None:
        self.name = name
        self._tools = tools
        self._fail_listing = fail_listing
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> list[ToolDescriptor]:
        if self._fail_listing:
            raise ConnectionError("server offline")
        return list(self._tools)

    async def call_tool(self, name: str, parameters: dict[str, Any]) -> ToolResult:
        self.calls.append((name, parameters))
        return ToolResult.ok({"source": self.name, "tool": name})


async def _echo(parameters: dict[str, Any]) -> dict[str, Any]:
    return {"echo": parameters}


async def _explode(parameters: dict[str, Any]) -> ToolResult:
    raise RuntimeError("calendar backend exploded")


@pytest.mark.asyncio
async def test_unknown_tool_returns_failure_result() -> None:
    registry = ToolRegistry()

    result = await registry.execute("launch_rockets", {})

    assert result.success is False
    assert result.error == "Tool 'launch_rockets' not found"


@pytest.mark.asyncio
async def test_executor_exceptions_become_failures() -> None:
    registry = ToolRegistry()
    registry.register(ToolDefinition(name="get_events", description="", category="calendar", executor=_explode))

    result = await registry.execute("get_events", {})

    assert result.success is False
    assert "exploded" in (result.error or "")


@pytest.mark.asyncio
async def test_parameters_are_validated_before_execution() -> None:
    registry = ToolRegistry()
    registry.register(
        ToolDefinition(
            name="search_events",
            description="Search events",
            category="calendar",
            executor=_echo,
            parameters=EventLookup,
        )
    )

    ok = await registry.execute("search_events", {"query": "budget"})
    invalid = await registry.execute("search_events", {"max_results": "many"})

    assert ok.success is True
    assert ok.data == {"echo": {"query": "budget", "max_results": 10}}
    assert invalid.success is False
    assert "Invalid parameters for 'search_events'" in (invalid.error or "")


def test_registration_and_categories() -> None:
    registry = ToolRegistry()
    registry.register_many(
        [
            ToolDefinition(name="get_events", description="List events", category="calendar", executor=_echo),
            ToolDefinition(name="create_event", description="Create event", category="calendar", executor=_echo),
            ToolDefinition(name="search_emails", description="Search mail", category="email", executor=_echo),
        ]
    )

    assert registry.categories() == ["calendar", "email"]
    assert [tool.name for tool in registry.list_by_category("calendar")] == ["get_events", "create_event"]
    assert registry.get("get_events").read_only is True  # type: ignore[union-attr]
    assert registry.get("create_event").read_only is False  # type: ignore[union-attr]

    registry.unregister("create_event")

    assert "create_event" not in registry
    assert "get_events" in registry


@pytest.mark.asyncio
async def test_external_sources_are_discovered_and_dispatched() -> None:
    registry = ToolRegistry()
    registry.register(ToolDefinition(name="get_events", description="", category="calendar", executor=_echo))
    passports = StaticSource(
        "http://records",
        [
            ToolDescriptor(name="get_passports", description="List passports", category="records"),
            ToolDescriptor(name="get_events", description="Shadowed", category="records"),
        ],
    )
    registry.add_source(passports)
    registry.add_source(StaticSource("http://offline", [], fail_listing=True))

    tools = await registry.list_all_available()
    result = await registry.execute("get_passports", {"country": "NL"})
    local = await registry.execute("get_events", {})

    assert [tool.name for tool in tools] == ["get_events", "get_passports"]
    assert result.data == {"source": "http://records", "tool": "get_passports"}
    assert passports.calls == [("get_passports", {"country": "NL"})]
    assert local.data == {"echo": {}}
    assert "get_passports" in registry


def test_coerce_tool_result_shapes() -> None:
    assert coerce_tool_result({"success": False, "error": "nope"}) == ToolResult.fail("nope")
    assert coerce_tool_result([1, 2]) == ToolResult.ok([1, 2])
    existing = ToolResult.ok("x")
    assert coerce_tool_result(existing) is existing
