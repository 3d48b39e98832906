from __future__ import annotations

import time
from typing import Sequence

from ..core import metrics
from ..core.config import Settings, get_settings
from ..core.logging import get_logger, new_run_id, run_log_context
from ..schemas.artifacts import ProcessedArtifact
from ..schemas.orchestration import (
    ChatMessage,
    OrchestrationResult,
    OrchestrationStep,
    OrchestratorConfig,
    ProviderConfig,
    ToolExecution,
)
from ..services.artifacts import InMemorySignatureStore, SignatureStore, artifact_signature
from ..services.knowledge import load_knowledge_index_ids
from ..services.llm import ProviderClient, resolve_provider_config
from ..tools.catalog import INITIALIZE_TOOL, SYNTHESIS_TOOL
from ..tools.registry import ToolRegistry
from .context import (
    build_context_digest,
    format_terse_status,
    format_tool_result,
    format_transcript,
    should_inject_full_summary,
)
from .evaluator import Evaluator
from .executor import StepExecutor, plan_dispatch, select_batch
from .planner import Clock, Planner, utc_clock
from .prompts import VALIDATION_SYSTEM_PROMPT, build_validation_prompt
from .state import OrchestratorContext, PlanQueue, ProgressCallback, RunState

logger = get_logger(name=__name__)

SAFE_APOLOGY = "I apologize, but I encountered an error while processing your request. Please try again."
GENERIC_FALLBACK = "I encountered an error while processing your request. Please try again."
MAX_IDLE_ITERATIONS = 2
# Closing synthesis always needs one slot in the step log.
CLOSING_RESERVE = 1


def synthesis_fallback(tool_count: int) -> str:
    if tool_count > 0:
        return (
            f"I was able to execute {tool_count} tool(s) but encountered an error while formatting "
            "the final response. Please try your request again."
        )
    return GENERIC_FALLBACK


class Orchestrator:
    """Drives one request through plan, bounded tool execution and a single closing synthesis."""

    def __init__(
        self,
        registry: ToolRegistry,
        provider: ProviderClient,
        *,
        settings: Settings | None = None,
        knowledge_config_path: str | None = None,
        signature_store: SignatureStore | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry
        self._provider = provider
        self._signature_store = signature_store or InMemorySignatureStore()
        self._clock = clock or utc_clock
        self._planner = Planner(provider, self._settings, clock=self._clock)
        self._evaluator = Evaluator(provider, self._settings)
        path = knowledge_config_path if knowledge_config_path is not None else self._settings.knowledge.config_path
        self._knowledge_index_ids = tuple(load_knowledge_index_ids(path))

    @property
    def knowledge_index_ids(self) -> tuple[str, ...]:
        return self._knowledge_index_ids

    def _context(self, progress: ProgressCallback | None) -> OrchestratorContext:
        return OrchestratorContext(
            knowledge_index_ids=self._knowledge_index_ids,
            resolve_provider_config=lambda model: resolve_provider_config(model, self._settings),
            progress=progress,
        )

    async def run(
        self,
        request: str,
        *,
        chat_history: Sequence[ChatMessage] = (),
        model: str | None = None,
        config: OrchestratorConfig | None = None,
        artifacts: Sequence[ProcessedArtifact] | None = None,
        progress: ProgressCallback | None = None,
    ) -> OrchestrationResult:
        config = config or self._settings.orchestrator_config()
        model = model or self._settings.orchestrator.default_model
        ctx = self._context(progress)
        state = RunState(request=request)
        started = time.perf_counter()
        with run_log_context(new_run_id(), model=model) as run_id:
            try:
                result = await self._run(state, ctx, config, model, list(chat_history), list(artifacts or ()))
            except Exception as exc:
                logger.exception("orchestrator_run_failed", error=str(exc), steps=len(state.step_log))
                metrics.record_run(status="failed", latency=time.perf_counter() - started)
                return OrchestrationResult(
                    success=False,
                    run_id=run_id,
                    final_answer=SAFE_APOLOGY,
                    steps=list(state.step_log) if config.development_mode else [],
                    tool_calls=list(state.tool_log) if config.development_mode else [],
                    error=str(exc) or exc.__class__.__name__,
                )
            metrics.record_run(status="completed", latency=time.perf_counter() - started)
            logger.info("orchestrator_run_completed", tools=len(state.tool_log), steps=len(state.step_log))
            return result.model_copy(update={"run_id": run_id})

    async def _run(
        self,
        state: RunState,
        ctx: OrchestratorContext,
        config: OrchestratorConfig,
        model: str,
        chat_history: list[ChatMessage],
        artifacts: list[ProcessedArtifact],
    ) -> OrchestrationResult:
        provider_config = ctx.resolve_provider_config(model)
        executor = StepExecutor(self._registry, knowledge_index_ids=ctx.knowledge_index_ids)
        state.say("user", state.request)
        ctx.log(f"Processing request with model {provider_config.model} via {provider_config.provider}")

        if artifacts:
            await self._initialize_artifacts(artifacts, ctx)

        state.current_context = build_context_digest(state.request, state.tool_log, chat_history)
        tools = await self._registry.list_all_available()
        outcome = await self._planner.plan(
            request=state.request,
            tools=tools,
            provider_config=provider_config,
            step_id=state.next_step_id(),
            knowledge_index_ids=ctx.knowledge_index_ids,
            artifacts=artifacts,
            context_digest=state.current_context,
        )
        state.add_step(
            OrchestrationStep(
                id=f"step_{state.step_count}",
                type="analysis",
                content=outcome.analysis_content,
                reasoning=f"Planned {len(outcome.planned)} step(s) using {outcome.strategy}",
            )
        )
        state.say("assistant", outcome.analysis_content or "(no analysis)")
        state.plan = PlanQueue(outcome.planned)
        state.need_more = not state.plan.exhausted
        ctx.log(f"Initial plan: {[step.tool for step in outcome.planned]}")

        batch_limit = self._settings.orchestrator.read_only_batch_limit
        while state.need_more and len(state.step_log) < config.max_steps and state.tool_count < config.max_tool_calls:
            # Room for at least one tool step plus its evaluation, keeping the closing slot free.
            step_room = config.max_steps - len(state.step_log) - CLOSING_RESERVE - 1
            if step_room < 1:
                logger.info("orchestrator_step_budget_reached", steps=len(state.step_log))
                break

            if state.plan.exhausted:
                tools = await self._registry.list_all_available()
                replan = await self._planner.plan(
                    request=state.request,
                    tools=tools,
                    provider_config=provider_config,
                    step_id=f"replan_{state.step_count}",
                    knowledge_index_ids=ctx.knowledge_index_ids,
                    artifacts=artifacts,
                    context_digest=state.current_context,
                    has_tool_history=bool(state.tool_log),
                    transcript=format_transcript(state.transcript),
                )
                if not state.plan.refill(replan.planned):
                    ctx.log("Replan produced no further steps")
                    break
                ctx.log(f"Replanned: {[step.tool for step in replan.planned]}")

            limit = min(batch_limit, config.max_tool_calls - state.tool_count, step_room)
            batch = select_batch(state.plan, limit=limit)
            available = {tool.name for tool in await self._registry.list_all_available()}
            dispatch = plan_dispatch(batch, available, state.plan)
            if not dispatch.steps:
                state.idle_iterations += 1
                if state.idle_iterations >= MAX_IDLE_ITERATIONS:
                    logger.warning("orchestrator_idle_limit", iterations=state.idle_iterations)
                    break
                continue
            state.idle_iterations = 0

            ctx.log(
                f"Executing {len(dispatch.steps)} tool(s)"
                f"{' concurrently' if dispatch.concurrent else ''}: {[step.tool for step in dispatch.steps]}"
            )
            executions = await executor.dispatch(dispatch, state.request)
            for step, execution in zip(dispatch.steps, executions):
                self._record_execution(state, execution, goal=step.goal)
            state.current_context = build_context_digest(state.request, state.tool_log, chat_history)

            verdict = await self._evaluator.evaluate(
                request=state.request,
                context_digest=state.current_context,
                tool_log=state.tool_log,
                step_log=state.step_log,
                transcript=state.transcript,
                provider_config=provider_config,
            )
            state.add_step(OrchestrationStep(id=state.next_step_id(), type="evaluation", content=verdict.content))
            state.say("assistant", f"Evaluation: {verdict.content}")
            state.need_more = verdict.need_more
            ctx.log(f"Evaluation: {'continue' if verdict.need_more else 'complete'}")

        return await self._close(state, ctx, config, model, provider_config, chat_history)

    def _record_execution(self, state: RunState, execution: ToolExecution, *, goal: str) -> None:
        state.add_execution(execution)
        state.add_step(
            OrchestrationStep(
                id=state.next_step_id(),
                type="tool_call",
                content=f"{goal} ({execution.tool} {'succeeded' if execution.result.success else 'failed'})",
                tool_execution=execution,
            )
        )
        if should_inject_full_summary(state.transcript, execution):
            state.say("assistant", format_tool_result(execution))
        else:
            state.say("assistant", format_terse_status(execution))

    async def _initialize_artifacts(self, artifacts: list[ProcessedArtifact], ctx: OrchestratorContext) -> None:
        signature = artifact_signature(artifacts)
        if signature == self._signature_store.get():
            logger.info("orchestrator_init_skipped", artifacts=len(artifacts))
            return
        available = {tool.name for tool in await self._registry.list_all_available()}
        if INITIALIZE_TOOL not in available:
            logger.warning("orchestrator_init_unavailable", tool=INITIALIZE_TOOL)
            return
        result = await self._registry.execute(
            INITIALIZE_TOOL,
            {"files": [artifact.model_dump() for artifact in artifacts]},
        )
        if result.success:
            self._signature_store.set(signature)
            ctx.log(f"Initialized file search for {len(artifacts)} file(s)")
        else:
            logger.warning("orchestrator_init_failed", error=result.error)

    async def _close(
        self,
        state: RunState,
        ctx: OrchestratorContext,
        config: OrchestratorConfig,
        model: str,
        provider_config: ProviderConfig,
        chat_history: list[ChatMessage],
    ) -> OrchestrationResult:
        state.current_context = build_context_digest(state.request, state.tool_log, chat_history)
        ctx.log(f"Synthesizing final answer from {state.tool_count} tool call(s)")
        result = await self._registry.execute(
            SYNTHESIS_TOOL,
            {
                "request": state.request,
                "context": state.current_context,
                "transcript": list(state.transcript),
                "tool_calls": list(state.tool_log),
                "steps": list(state.step_log),
                "provider_config": provider_config,
                "model": model,
            },
        )
        data = result.data if isinstance(result.data, dict) else {}
        content = str(data.get("content") or "").strip()
        if result.success and content:
            final_answer = content
            reasoning = str(data.get("reasoning") or "") or None
        else:
            logger.warning("orchestrator_synthesis_failed", error=result.error, tools=state.tool_count)
            final_answer = synthesis_fallback(state.tool_count)
            reasoning = f"Synthesis failed: {result.error or 'empty response'}"
        state.add_step(
            OrchestrationStep(id=state.next_step_id(), type="synthesis", content=final_answer, reasoning=reasoning)
        )

        last = state.last_execution
        if (
            self._settings.orchestrator.validation_enabled
            and last is not None
            and last.result.success
            and len(state.step_log) < config.max_steps
        ):
            await self._validate(state, final_answer, provider_config)

        steps = state.step_log if config.development_mode else [step for step in state.step_log if step.type == "synthesis"]
        return OrchestrationResult(
            success=True,
            final_answer=final_answer,
            steps=list(steps),
            tool_calls=list(state.tool_log),
        )

    async def _validate(self, state: RunState, answer: str, provider_config: ProviderConfig) -> None:
        try:
            reply = await self._provider.generate(
                build_validation_prompt(request=state.request, answer=answer),
                provider_config,
                model=provider_config.model,
                max_tokens=self._settings.orchestrator.validation_max_tokens,
                system_prompt=VALIDATION_SYSTEM_PROMPT,
            )
        except Exception as exc:
            logger.warning("orchestrator_validation_failed", error=str(exc))
            metrics.record_provider_failure(phase="validation")
            return
        verdict = reply.text.strip()
        acceptable = "FORMAT_ACCEPTABLE" in verdict.upper() and "NEEDS_REFINEMENT" not in verdict.upper()
        if not acceptable:
            logger.info("orchestrator_format_needs_refinement", verdict=verdict[:300])
        state.add_step(
            OrchestrationStep(
                id=state.next_step_id(),
                type="evaluation",
                content=verdict,
                reasoning="Post-synthesis format check",
            )
        )
