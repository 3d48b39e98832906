from __future__ import annotations

from typing import Any

import pytest

from steward.orchestration.evaluator import (
    Evaluator,
    completed_mutations,
    leading_marker,
    parse_verdict,
    requests_mutation,
)
from steward.schemas.orchestration import ToolExecution, ToolResult
from steward.services.llm import resolve_provider_config
from steward.tools.exceptions import ProviderCallError
from tests.helpers.stubs import FIXED_NOW, StubProvider, make_settings


def _execution(tool: str, *, success: bool = True, data: Any = None) -> ToolExecution:
    result = ToolResult.ok(data if data is not None else {"items": []}) if success else ToolResult.fail("boom")
    return ToolExecution(tool=tool, result=result, start_time=FIXED_NOW, end_time=FIXED_NOW)


async def _evaluate(provider: StubProvider, request: str, tool_log: list[ToolExecution]):
    settings = make_settings()
    evaluator = Evaluator(provider, settings)  # type: ignore[arg-type]
    return await evaluator.evaluate(
        request=request,
        context_digest="USER REQUEST: " + request,
        tool_log=tool_log,
        step_log=[],
        transcript=[],
        provider_config=resolve_provider_config("gpt-4o-mini", settings),
    )


def test_parse_verdict_reads_leading_markers() -> None:
    assert parse_verdict("CONTINUE: still need the event id") is True
    assert parse_verdict("**CONTINUE** - more data required") is True
    assert parse_verdict("COMPLETE: all set") is False
    assert parse_verdict("> Done. Nothing else to do") is False
    assert parse_verdict("completed") is False
    assert leading_marker("We still need the attendee list.") is None


def test_parse_verdict_falls_back_to_cues_then_stops() -> None:
    assert parse_verdict("The request is not yet complete because the email was not sent.") is True
    assert parse_verdict("We still need the attendee list.") is True
    assert parse_verdict("Looks good to me.") is False
    assert parse_verdict("") is False


def test_requests_mutation_detects_change_verbs() -> None:
    assert requests_mutation("Create an event for lunch tomorrow")
    assert requests_mutation("please schedule a call with Ana")
    assert requests_mutation("cancel my dentist appointment")
    assert not requests_mutation("what is on my schedule today?")
    assert not requests_mutation("find my meetings about budget next week")


def test_completed_mutations_ignore_reads_and_failures() -> None:
    log = [
        _execution("search_events"),
        _execution("create_event", success=False),
        _execution("update_event"),
    ]

    assert completed_mutations(log) == ["update_event"]


@pytest.mark.asyncio
async def test_unmarked_reply_does_not_complete_a_pending_mutation() -> None:
    provider = StubProvider(evaluator=["Found the meeting the user mentioned."])

    verdict = await _evaluate(provider, "move my budget meeting to Friday", [_execution("search_events")])

    assert verdict.need_more is True
    assert verdict.overridden is True
    assert verdict.content.startswith("CONTINUE:")


@pytest.mark.asyncio
async def test_successful_mutation_allows_completion() -> None:
    provider = StubProvider(evaluator=["COMPLETE: the meeting was moved."])

    verdict = await _evaluate(
        provider,
        "move my budget meeting to Friday",
        [_execution("search_events"), _execution("update_event")],
    )

    assert verdict.need_more is False
    assert verdict.overridden is False
    assert "Successful changes (create/update/delete/send): update_event" in provider.prompts("evaluator")[0]


@pytest.mark.asyncio
async def test_information_request_completes_after_reads() -> None:
    provider = StubProvider()

    verdict = await _evaluate(provider, "what meetings do I have today?", [_execution("get_events")])

    assert verdict.need_more is False


@pytest.mark.asyncio
async def test_provider_failure_stops_the_loop() -> None:
    provider = StubProvider(evaluator=[ProviderCallError("rate limited")])

    verdict = await _evaluate(provider, "delete the offsite event", [])

    assert verdict.need_more is False
    assert "rate limited" in verdict.content


@pytest.mark.asyncio
async def test_explicit_complete_marker_is_final_for_change_words() -> None:
    provider = StubProvider(evaluator=["COMPLETE: listed the meetings"])

    verdict = await _evaluate(
        provider,
        "send me a list of my meetings about the budget update",
        [_execution("search_events")],
    )

    assert verdict.need_more is False
    assert verdict.overridden is False
    assert verdict.content == "COMPLETE: listed the meetings"


@pytest.mark.asyncio
async def test_explicit_complete_marker_is_final_for_pending_mutation() -> None:
    provider = StubProvider(evaluator=["**COMPLETE** - the meeting could not be found"])

    verdict = await _evaluate(provider, "move my budget meeting to Friday", [_execution("search_events")])

    assert verdict.need_more is False
    assert verdict.overridden is False
