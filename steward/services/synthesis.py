from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, Field

from ..core import metrics
from ..core.config import Settings, get_settings
from ..core.logging import get_logger
from ..orchestration.context import format_step_history, format_transcript
from ..orchestration.prompts import SYNTHESIS_SYSTEM_PROMPT, build_synthesis_prompt
from ..schemas.orchestration import (
    ConversationEntry,
    OrchestrationStep,
    ProviderConfig,
    ToolExecution,
    ToolResult,
)
from ..tools.catalog import SYNTHESIS_TOOL, is_mutating
from ..tools.registry import ToolDefinition, ToolRegistry
from .llm import ProviderClient

logger = get_logger(name=__name__)

_REASONING_SPLIT = re.compile(r"^\s*(?:\*\*)?REASONING(?:\*\*)?\s*:", re.IGNORECASE | re.MULTILINE)


class SynthesisInput(BaseModel):
    request: str
    context: str = ""
    transcript: list[ConversationEntry] = Field(default_factory=list)
    tool_calls: list[ToolExecution] = Field(default_factory=list)
    steps: list[OrchestrationStep] = Field(default_factory=list)
    provider_config: ProviderConfig
    model: str | None = None


def _describe_action(execution: ToolExecution) -> str:
    detail = execution.result.message or execution.result.error or ""
    return f"{execution.tool}: {detail}".rstrip(": ")


def split_reasoning(text: str) -> tuple[str, str]:
    match = _REASONING_SPLIT.search(text)
    if match is None:
        return text.strip(), ""
    return text[: match.start()].strip(), text[match.end():].strip()


class Synthesizer:
    """Composes the user-facing answer from everything a run gathered."""

    def __init__(self, provider: ProviderClient, settings: Settings | None = None) -> None:
        self._provider = provider
        self._settings = settings or get_settings()

    async def synthesize(self, arguments: dict[str, Any]) -> ToolResult:
        payload = SynthesisInput.model_validate(arguments)
        mutating = [execution for execution in payload.tool_calls if is_mutating(execution.tool)]
        confirmed = [_describe_action(execution) for execution in mutating if execution.result.success]
        failed = [_describe_action(execution) for execution in mutating if not execution.result.success]
        prompt = build_synthesis_prompt(
            request=payload.request,
            context_digest=payload.context,
            transcript=format_transcript(payload.transcript),
            step_history=format_step_history(payload.steps),
            confirmed_actions=confirmed,
            failed_actions=failed,
        )
        try:
            reply = await self._provider.generate(
                prompt,
                payload.provider_config,
                model=payload.model or payload.provider_config.model,
                max_tokens=self._settings.orchestrator.synthesis_max_tokens,
                system_prompt=SYNTHESIS_SYSTEM_PROMPT,
            )
        except Exception as exc:
            logger.warning("synthesis_provider_failed", error=str(exc))
            metrics.record_provider_failure(phase="synthesis")
            return ToolResult.fail(f"Synthesis failed: {exc}")

        content, reasoning = split_reasoning(reply.text)
        if not content:
            logger.warning("synthesis_empty_reply")
            return ToolResult.fail("Synthesis produced an empty reply")
        logger.info("synthesis_completed", tools=len(payload.tool_calls), confirmed_actions=len(confirmed))
        return ToolResult.ok({"content": content, "reasoning": reasoning})


def register_synthesis_tools(registry: ToolRegistry, synthesizer: Synthesizer) -> None:
    registry.register(
        ToolDefinition(
            name=SYNTHESIS_TOOL,
            description="Compose the final answer from all tool results gathered in this run.",
            category="synthesis",
            executor=synthesizer.synthesize,
            parameters=SynthesisInput,
            read_only=False,
        )
    )
