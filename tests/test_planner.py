from __future__ import annotations

import pytest

from steward.orchestration.planner import Planner, normalize_tool_name, valid_tool_names
from steward.schemas.artifacts import ProcessedArtifact
from steward.services.llm import resolve_provider_config
from steward.tools.exceptions import ProviderCallError
from steward.tools.registry import ToolDescriptor
from tests.helpers.stubs import FIXED_NOW, StubProvider, make_settings, plan_reply, step


def _tools(*names: str) -> list[ToolDescriptor]:
    return [ToolDescriptor(name=name, description=f"{name} tool", category="general") for name in names]


def _planner(provider: StubProvider) -> tuple[Planner, object]:
    settings = make_settings()
    return Planner(provider, settings, clock=lambda: FIXED_NOW), resolve_provider_config("gpt-4o-mini", settings)  # type: ignore[arg-type]


def test_valid_names_exclude_reserved_and_unconfigured_tools() -> None:
    tools = _tools("get_events", "knowledge_search", "synthesize_final_answer", "initialize_file_search")

    assert valid_tool_names(tools, knowledge_index_ids=[]) == {"get_events"}
    assert valid_tool_names(tools, knowledge_index_ids=["idx-1"]) == {"get_events", "knowledge_search"}


def test_normalize_tool_name_strips_prefixes_and_applies_aliases() -> None:
    valid = {"search_files", "get_events", "knowledge_search"}

    assert normalize_tool_name("calendar.get_events", valid) == "get_events"
    assert normalize_tool_name("files.file_search_tool", valid) == "search_files"
    assert normalize_tool_name("getEvents", valid) == "get_events"
    assert normalize_tool_name("vector_file_search", valid) == "knowledge_search"
    assert normalize_tool_name("launch_rockets", valid) is None
    assert normalize_tool_name(None, valid) is None


@pytest.mark.asyncio
async def test_plan_keeps_only_registered_tools_in_order() -> None:
    provider = StubProvider(
        planner=[
            plan_reply(
                step("calendar.search_events", query="budget"),
                step("delete_everything"),
                {"name": "searchEmails", "params": {"query": "budget"}, "reasoning": "emails too"},
                step("synthesize_final_answer"),
            )
        ]
    )
    planner, config = _planner(provider)

    outcome = await planner.plan(
        request="find budget meetings and emails",
        tools=_tools("search_events", "search_emails", "synthesize_final_answer"),
        provider_config=config,  # type: ignore[arg-type]
        step_id="step_1",
    )

    assert [planned.tool for planned in outcome.planned] == ["search_events", "search_emails"]
    assert outcome.planned[1].parameters == {"query": "budget"}
    assert outcome.planned[1].goal == "emails too"
    assert outcome.strategy == "fenced_marker"
    assert outcome.analysis_content == "The user needs data from their tools."


@pytest.mark.asyncio
async def test_provider_failure_yields_empty_plan_with_error_in_analysis() -> None:
    provider = StubProvider(planner=[ProviderCallError("backend unreachable")])
    planner, config = _planner(provider)

    outcome = await planner.plan(
        request="schedule lunch tomorrow at noon",
        tools=_tools("create_event", "search_events"),
        provider_config=config,  # type: ignore[arg-type]
        step_id="step_1",
    )

    assert outcome.planned == []
    assert "backend unreachable" in outcome.analysis_content
    assert outcome.strategy == "provider_failure"


@pytest.mark.asyncio
async def test_unusable_plan_falls_back_to_heuristic_lookup() -> None:
    provider = StubProvider(planner=["I would look at your calendar for that."])
    planner, config = _planner(provider)

    outcome = await planner.plan(
        request="what meetings do I have about hiring?",
        tools=_tools("search_events", "get_events"),
        provider_config=config,  # type: ignore[arg-type]
        step_id="step_1",
    )

    assert outcome.strategy == "heuristic"
    assert [planned.tool for planned in outcome.planned] == ["search_events"]
    assert outcome.planned[0].parameters == {"query": "what meetings do I have about hiring?"}


@pytest.mark.asyncio
async def test_replanning_never_uses_heuristics() -> None:
    provider = StubProvider(planner=[plan_reply()])
    planner, config = _planner(provider)

    outcome = await planner.plan(
        request="what meetings do I have about hiring?",
        tools=_tools("search_events"),
        provider_config=config,  # type: ignore[arg-type]
        step_id="replan_3",
        has_tool_history=True,
        transcript="ASSISTANT: Evaluation: CONTINUE: the hiring sync is not listed yet",
    )

    assert outcome.planned == []
    assert "Plan only the remaining work" in provider.prompts("planner")[0]
    assert "Conversation so far:\nASSISTANT: Evaluation: CONTINUE" in provider.prompts("planner")[0]


@pytest.mark.asyncio
async def test_artifacts_put_file_search_first_and_attach_images() -> None:
    provider = StubProvider(planner=[plan_reply(step("get_passports"))])
    planner, config = _planner(provider)
    artifacts = [
        ProcessedArtifact(
            name="passport.pdf",
            size=2048,
            file_type="application/pdf",
            document_id="doc-1",
            converted_images=["data:image/png;base64,AAA"],
        )
    ]

    outcome = await planner.plan(
        request="add the passport I uploaded",
        tools=_tools("get_passports", "search_files"),
        provider_config=config,  # type: ignore[arg-type]
        step_id="step_1",
        artifacts=artifacts,
    )

    assert [planned.tool for planned in outcome.planned] == ["search_files", "get_passports"]
    call = provider.calls[0]
    assert call["images"] == ["data:image/png;base64,AAA"]
    assert call["file_ids"] == ["doc-1"]
    assert "passport.pdf" in call["prompt"]
