from __future__ import annotations

from datetime import timedelta

from steward.orchestration.context import (
    build_context_digest,
    build_tool_catalog,
    format_terse_status,
    format_tool_result,
    should_inject_full_summary,
)
from steward.schemas.orchestration import ChatMessage, ConversationEntry, ToolExecution, ToolResult
from steward.tools.registry import ToolDescriptor
from tests.helpers.stubs import FIXED_NOW


def _execution(tool: str, result: ToolResult, **parameters) -> ToolExecution:
    return ToolExecution(
        tool=tool,
        parameters=parameters,
        result=result,
        start_time=FIXED_NOW,
        end_time=FIXED_NOW + timedelta(milliseconds=42),
        duration_ms=42,
    )


def test_tool_catalog_groups_by_category_with_hints() -> None:
    catalog = build_tool_catalog(
        [
            ToolDescriptor(name="search_emails", description="Search mail", category="email"),
            ToolDescriptor(name="get_events", description="List events", category="calendar"),
        ]
    )

    assert catalog.index("CALENDAR:") < catalog.index("EMAIL:")
    assert "- get_events: List events [params: time_min and time_max" in catalog
    assert build_tool_catalog([]) == "(no tools available)"


def test_context_digest_lists_history_and_executions() -> None:
    history = [ChatMessage(role="user", content=f"message {index}") for index in range(12)]
    log = [
        _execution("search_events", ToolResult.ok([{"summary": "Budget sync"}]), query="budget"),
        _execution("search_emails", ToolResult.fail("mailbox locked")),
    ]

    digest = build_context_digest("find budget things", log, history)

    assert digest.startswith("USER REQUEST: find budget things")
    assert "message 1\n" not in digest
    assert "USER: message 2" in digest
    assert "Budget sync" in digest
    assert "TOOL EXECUTION SUMMARY: Total: 2, succeeded: 1, failed: 1." in digest


def test_context_digest_without_executions() -> None:
    assert "TOOL EXECUTIONS: none yet" in build_context_digest("hello", [])


def test_tool_result_formatting() -> None:
    success = _execution("get_events", ToolResult.ok({"items": [1]}), time_min="2025-09-17")
    failure = _execution("delete_event", ToolResult.fail("not found"), event_id="x")

    assert format_tool_result(success).startswith("✅ Tool get_events succeeded in 42ms")
    assert "Error: not found" in format_tool_result(failure)
    assert format_terse_status(failure) == "Tool delete_event failed."


def test_repeated_summary_for_same_tool_is_suppressed() -> None:
    execution = _execution("search_events", ToolResult.ok([{"summary": "Budget sync"}]))
    transcript = [
        ConversationEntry(role="assistant", content=format_tool_result(execution)),
        ConversationEntry(role="assistant", content="COMPLETE: done"),
    ]

    assert should_inject_full_summary([], execution) is True
    assert should_inject_full_summary(transcript, execution) is False
    assert should_inject_full_summary(transcript, _execution("get_events", ToolResult.ok([1]))) is True


def test_empty_success_gets_terse_status() -> None:
    assert should_inject_full_summary([], _execution("get_events", ToolResult.ok([]))) is False
    assert should_inject_full_summary([], _execution("get_events", ToolResult.fail("x"))) is True
