from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator

from ..core.logging import get_logger
from ..schemas.orchestration import (
    ConversationEntry,
    OrchestrationStep,
    ProviderConfig,
    ToolExecution,
)

logger = get_logger(name=__name__)

ProgressCallback = Callable[[str], None]
ProviderResolver = Callable[[str], ProviderConfig]


@dataclass(slots=True)
class PlannedStep:
    id: str
    goal: str
    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)


class PlanQueue:
    """Pending plan steps consumed front to back.

    When the queue runs dry the driver asks for a replan through ``refill``
    instead of re-entering the planner recursively.
    """

    def __init__(self, steps: Iterable[PlannedStep] = ()) -> None:
        self._steps: deque[PlannedStep] = deque(steps)

    def __len__(self) -> int:
        return len(self._steps)

    def __iter__(self) -> Iterator[PlannedStep]:
        return iter(self._steps)

    @property
    def exhausted(self) -> bool:
        return not self._steps

    def peek(self, index: int = 0) -> PlannedStep | None:
        if index < len(self._steps):
            return self._steps[index]
        return None

    def pop(self) -> PlannedStep:
        return self._steps.popleft()

    def push_front(self, steps: Iterable[PlannedStep]) -> None:
        self._steps.extendleft(reversed(list(steps)))

    def refill(self, steps: Iterable[PlannedStep]) -> bool:
        self._steps.extend(steps)
        return not self.exhausted


@dataclass(slots=True)
class OrchestratorContext:
    knowledge_index_ids: tuple[str, ...]
    resolve_provider_config: ProviderResolver
    progress: ProgressCallback | None = None

    def log(self, message: str) -> None:
        logger.info("orchestrator_progress", message=message)
        if self.progress is not None:
            try:
                self.progress(message)
            except Exception as exc:
                logger.warning("orchestrator_progress_callback_failed", error=str(exc))


@dataclass(slots=True)
class RunState:
    request: str
    plan: PlanQueue = field(default_factory=PlanQueue)
    step_log: list[OrchestrationStep] = field(default_factory=list)
    tool_log: list[ToolExecution] = field(default_factory=list)
    transcript: list[ConversationEntry] = field(default_factory=list)
    step_count: int = 0
    tool_count: int = 0
    need_more: bool = True
    current_context: str = ""
    idle_iterations: int = 0

    def next_step_id(self) -> str:
        self.step_count += 1
        return f"step_{self.step_count}"

    def add_step(self, step: OrchestrationStep) -> OrchestrationStep:
        self.step_log.append(step)
        return step

    def add_execution(self, execution: ToolExecution) -> None:
        self.tool_log.append(execution)
        self.tool_count += 1

    def say(self, role: str, content: str) -> None:
        self.transcript.append(ConversationEntry(role=role, content=content))  # type: ignore[arg-type]

    @property
    def last_execution(self) -> ToolExecution | None:
        return self.tool_log[-1] if self.tool_log else None
