"""Batch selection and dispatch of planned tool calls.

Consecutive read-only steps are gathered concurrently; anything with side
effects is dispatched on its own.
"""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Collection, Sequence

from ..core import metrics
from ..core.logging import get_logger
from ..schemas.orchestration import ToolExecution, ToolResult
from ..tools.catalog import KNOWLEDGE_SEARCH_TOOL, MUTATING_SCHEDULE_TOOLS, is_read_only
from ..tools.registry import ToolRegistry
from .heuristics import derive_title
from .sanitization import sanitize_schedule_payload
from .state import PlanQueue, PlannedStep

logger = get_logger(name=__name__)


@dataclass(slots=True)
class Dispatch:
    """Steps chosen for one iteration and whether they run concurrently."""

    steps: list[PlannedStep]
    concurrent: bool


def select_batch(queue: PlanQueue, *, limit: int) -> list[PlannedStep]:
    """Pop the next step plus any directly following read-only steps, up to ``limit``."""
    if queue.exhausted or limit < 1:
        return []
    batch = [queue.pop()]
    if not is_read_only(batch[0].tool):
        return batch
    while len(batch) < limit:
        candidate = queue.peek()
        if candidate is None or not is_read_only(candidate.tool):
            break
        batch.append(queue.pop())
    return batch


def plan_dispatch(batch: Sequence[PlannedStep], available: Collection[str], queue: PlanQueue) -> Dispatch:
    """Drop steps whose tool disappeared, then decide between concurrent and single dispatch.

    When a single dispatch is chosen the remaining valid steps go back to the
    front of ``queue`` for later iterations.
    """
    valid: list[PlannedStep] = []
    for step in batch:
        if step.tool in available:
            valid.append(step)
        else:
            logger.warning("executor_tool_dropped", tool=step.tool, step=step.id, reason="not_registered")
    if len(valid) > 1 and all(is_read_only(step.tool) for step in valid):
        return Dispatch(steps=valid, concurrent=True)
    if len(valid) > 1:
        queue.push_front(valid[1:])
    return Dispatch(steps=valid[:1], concurrent=False)


class StepExecutor:
    def __init__(self, registry: ToolRegistry, *, knowledge_index_ids: Sequence[str] = ()) -> None:
        self._registry = registry
        self._knowledge_index_ids = list(knowledge_index_ids)

    def prepare_parameters(self, step: PlannedStep, request: str) -> dict[str, Any]:
        parameters = copy.deepcopy(step.parameters)
        payload_key = MUTATING_SCHEDULE_TOOLS.get(step.tool)
        if payload_key is not None and isinstance(parameters.get(payload_key), dict):
            payload = sanitize_schedule_payload(request, parameters[payload_key])
            if step.tool == "create_event" and not str(payload.get("summary") or "").strip():
                payload["summary"] = derive_title(request)
                logger.info("executor_summary_filled", tool=step.tool, summary=payload["summary"])
            parameters[payload_key] = payload
        if step.tool == KNOWLEDGE_SEARCH_TOOL and not parameters.get("index_ids") and self._knowledge_index_ids:
            parameters["index_ids"] = list(self._knowledge_index_ids)
        return parameters

    async def run(self, step: PlannedStep, request: str) -> ToolExecution:
        parameters = self.prepare_parameters(step, request)
        start_time = datetime.now(timezone.utc)
        started = time.perf_counter()
        try:
            result = await self._registry.execute(step.tool, parameters)
        except Exception as exc:
            logger.exception("executor_tool_raised", tool=step.tool, error=str(exc))
            result = ToolResult.fail(str(exc) or exc.__class__.__name__)
        elapsed = time.perf_counter() - started
        end_time = datetime.now(timezone.utc)
        metrics.record_tool_call(tool=step.tool, success=result.success, latency=elapsed)
        logger.info(
            "executor_tool_completed",
            tool=step.tool,
            step=step.id,
            success=result.success,
            duration_ms=int(elapsed * 1000),
        )
        return ToolExecution(
            tool=step.tool,
            parameters=parameters,
            result=result,
            start_time=start_time,
            end_time=end_time,
            duration_ms=int(elapsed * 1000),
        )

    async def dispatch(self, dispatch: Dispatch, request: str) -> list[ToolExecution]:
        if not dispatch.steps:
            return []
        if not dispatch.concurrent:
            return [await self.run(dispatch.steps[0], request)]
        logger.info("executor_batch_started", tools=[step.tool for step in dispatch.steps])
        return list(await asyncio.gather(*(self.run(step, request) for step in dispatch.steps)))
