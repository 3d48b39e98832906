from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from ..core import metrics
from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.orchestration import ConversationEntry, OrchestrationStep, ProviderConfig, ToolExecution
from ..services.llm import ProviderClient
from ..tools.catalog import is_mutating
from .context import format_step_history, format_transcript
from .prompts import EVALUATOR_SYSTEM_PROMPT, build_evaluator_prompt

logger = get_logger(name=__name__)

_LEADING_NOISE = re.compile(r"^[\s`*#>\-_\"']+")
_CONTINUE_MARKER = re.compile(r"^CONTINUE\b", re.IGNORECASE)
_DONE_MARKER = re.compile(r"^(COMPLETE|COMPLETED|DONE)\b", re.IGNORECASE)

CONTINUE_CUES = (
    "need more",
    "needs more",
    "not yet complete",
    "not complete",
    "not been completed",
    "incomplete",
    "still need",
    "still missing",
    "must still",
    "has not been",
    "have not been",
    "requires further",
    "should continue",
    "next step",
)

MUTATION_INTENT = re.compile(
    r"\b(create|add|book|update|change|modify|move|reschedule|rename|delete|remove|cancel|send|reply|forward|save|store)\b"
    r"|\bschedule\s+(a|an|the|my|me|us|it|this|that|meeting|call|event|appointment)\b",
    re.IGNORECASE,
)


@dataclass(slots=True)
class Verdict:
    need_more: bool
    content: str
    overridden: bool = False


def leading_marker(text: str) -> bool | None:
    """``need_more`` stated by a leading CONTINUE or COMPLETE/DONE marker, None when there is none."""
    cleaned = _LEADING_NOISE.sub("", text or "")
    if _CONTINUE_MARKER.match(cleaned):
        return True
    if _DONE_MARKER.match(cleaned):
        return False
    return None


def parse_verdict(text: str) -> bool:
    """Map an evaluator reply to ``need_more``: leading markers first, then phrase cues, else stop."""
    marker = leading_marker(text)
    if marker is not None:
        return marker
    lowered = _LEADING_NOISE.sub("", text or "").lower()
    return any(cue in lowered for cue in CONTINUE_CUES)


def requests_mutation(request: str) -> bool:
    return bool(MUTATION_INTENT.search(request or ""))


def completed_mutations(tool_log: Sequence[ToolExecution]) -> list[str]:
    return [execution.tool for execution in tool_log if is_mutating(execution.tool) and execution.result.success]


class Evaluator:
    def __init__(self, provider: ProviderClient, settings: Settings) -> None:
        self._provider = provider
        self._settings = settings

    async def evaluate(
        self,
        *,
        request: str,
        context_digest: str,
        tool_log: Sequence[ToolExecution],
        step_log: Sequence[OrchestrationStep],
        transcript: Sequence[ConversationEntry],
        provider_config: ProviderConfig,
    ) -> Verdict:
        mutations = completed_mutations(tool_log)
        prompt = build_evaluator_prompt(
            request=request,
            context_digest=context_digest,
            step_history=format_step_history(step_log),
            transcript=format_transcript(transcript),
            completed_mutations=mutations,
        )
        try:
            reply = await self._provider.generate(
                prompt,
                provider_config,
                model=provider_config.model,
                max_tokens=self._settings.orchestrator.evaluator_max_tokens,
                system_prompt=EVALUATOR_SYSTEM_PROMPT,
            )
            content = reply.text.strip()
        except Exception as exc:
            logger.warning("evaluator_provider_failed", error=str(exc))
            metrics.record_provider_failure(phase="evaluator")
            return Verdict(need_more=False, content=f"COMPLETE: evaluation unavailable ({exc})")

        need_more = parse_verdict(content)
        # An explicit marker is final; the guard only settles replies without one.
        if leading_marker(content) is None and not need_more and requests_mutation(request) and not mutations:
            logger.info("evaluator_mutation_pending", request=request[:200])
            return Verdict(
                need_more=True,
                content=f"CONTINUE: the requested change has not been performed yet. {content}",
                overridden=True,
            )
        logger.info("evaluator_verdict", need_more=need_more)
        return Verdict(need_more=need_more, content=content)
