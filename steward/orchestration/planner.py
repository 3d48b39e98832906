from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Collection, Mapping, Sequence

from ..core import metrics
from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.artifacts import ProcessedArtifact
from ..schemas.orchestration import ProviderConfig
from ..services.llm import ProviderClient
from ..tools.catalog import FILE_SEARCH_TOOL, KNOWLEDGE_SEARCH_TOOL, RESERVED_TOOLS, canonical_tool_name
from ..tools.registry import ToolDescriptor
from .context import build_artifact_digest, build_tool_catalog
from .heuristics import build_heuristic_plan
from .parsing import ParseFailure, parse_plan_reply, split_analysis
from .prompts import PLANNER_SYSTEM_PROMPT, build_planner_prompt
from .state import PlannedStep

logger = get_logger(name=__name__)

Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PlanOutcome:
    analysis_content: str
    planned: list[PlannedStep] = field(default_factory=list)
    strategy: str = "empty"


def valid_tool_names(tools: Sequence[ToolDescriptor], *, knowledge_index_ids: Collection[str]) -> set[str]:
    """Names the planner may emit: every listed tool except reserved ones and unconfigured prerequisites."""
    names = {tool.name for tool in tools} - RESERVED_TOOLS
    if not knowledge_index_ids:
        names.discard(KNOWLEDGE_SEARCH_TOOL)
    return names


def normalize_tool_name(raw: Any, valid: Collection[str]) -> str | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    stripped = raw.strip().rsplit(".", 1)[-1]
    if stripped in valid:
        return stripped
    canonical = canonical_tool_name(raw)
    if canonical in valid:
        return canonical
    return None


def normalize_steps(
    raw_steps: Sequence[Mapping[str, Any]],
    valid: Collection[str],
    *,
    step_id: str,
) -> list[PlannedStep]:
    steps: list[PlannedStep] = []
    for index, entry in enumerate(raw_steps):
        raw_name = entry.get("tool") or entry.get("name")
        name = normalize_tool_name(raw_name, valid)
        if name is None:
            logger.warning("planner_step_rejected", tool=raw_name, reason="unknown_tool")
            continue
        parameters = entry.get("parameters", entry.get("params", entry.get("arguments")))
        if not isinstance(parameters, Mapping):
            parameters = {}
        goal = entry.get("goal") or entry.get("reasoning") or entry.get("reason") or f"Call {name}"
        steps.append(
            PlannedStep(
                id=f"plan_{step_id}_{index}",
                goal=str(goal),
                tool=name,
                parameters=dict(parameters),
            )
        )
    return steps


class Planner:
    """Single-call analyze-and-plan against the provider, with tolerant parsing and keyword fallback."""

    def __init__(
        self,
        provider: ProviderClient,
        settings: Settings,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._provider = provider
        self._settings = settings
        self._clock = clock or utc_clock

    async def plan(
        self,
        *,
        request: str,
        tools: Sequence[ToolDescriptor],
        provider_config: ProviderConfig,
        step_id: str,
        knowledge_index_ids: Collection[str] = (),
        artifacts: Sequence[ProcessedArtifact] = (),
        context_digest: str = "",
        has_tool_history: bool = False,
        transcript: str = "",
    ) -> PlanOutcome:
        valid = valid_tool_names(tools, knowledge_index_ids=knowledge_index_ids)
        now = self._clock()
        prompt = build_planner_prompt(
            request=request,
            tool_catalog=build_tool_catalog(tool for tool in tools if tool.name in valid),
            artifact_digest=build_artifact_digest(artifacts),
            context_digest=context_digest or "(none)",
            now=now,
            replanning=has_tool_history,
            transcript=transcript,
        )
        logger.debug("planner_prompt", prompt=prompt)
        images = [url for artifact in artifacts for url in artifact.image_urls]
        file_ids = [artifact.document_id for artifact in artifacts if artifact.document_id]
        try:
            reply = await self._provider.generate(
                prompt,
                provider_config,
                model=provider_config.model,
                max_tokens=self._settings.orchestrator.planner_max_tokens,
                images=images or None,
                file_ids=file_ids or None,
                system_prompt=PLANNER_SYSTEM_PROMPT,
            )
        except Exception as exc:
            logger.warning("planner_provider_failed", error=str(exc))
            metrics.record_provider_failure(phase="planner")
            metrics.record_planner_outcome(strategy="provider_failure")
            return PlanOutcome(analysis_content=f"Planning failed: {exc}", strategy="provider_failure")

        text = reply.text.strip()
        parsed = parse_plan_reply(text)
        if isinstance(parsed, ParseFailure):
            logger.warning("planner_output_invalid", reason=parsed.reason, response=text[:500])
            steps: list[PlannedStep] = []
            strategy = "unparsed"
        else:
            steps = normalize_steps(parsed.steps, valid, step_id=step_id)
            strategy = parsed.strategy

        if steps and artifacts and FILE_SEARCH_TOOL in valid and all(step.tool != FILE_SEARCH_TOOL for step in steps):
            steps.insert(
                0,
                PlannedStep(
                    id=f"plan_{step_id}_files",
                    goal="Search the files uploaded in this conversation",
                    tool=FILE_SEARCH_TOOL,
                    parameters={"query": request},
                ),
            )
            logger.info("planner_file_search_prepended", artifacts=len(artifacts))

        if not steps and not has_tool_history:
            steps = build_heuristic_plan(
                request,
                valid,
                now=now,
                timezone=self._settings.scheduling.timezone,
                has_artifacts=bool(artifacts),
            )
            if steps:
                strategy = "heuristic"

        metrics.record_planner_outcome(strategy=strategy if steps else "empty")
        logger.info("planner_plan_ready", steps=len(steps), strategy=strategy, tools=[step.tool for step in steps])
        return PlanOutcome(analysis_content=split_analysis(text) or text, planned=steps, strategy=strategy)
