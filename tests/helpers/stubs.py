from __future__ import annotations

import asyncio
import json
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence, Union

from steward.core.config import (
    KnowledgeSettings,
    OrchestratorSettings,
    ProviderSettings,
    Settings,
)
from steward.schemas.orchestration import ProviderConfig, ProviderReply, ToolResult
from steward.services.synthesis import Synthesizer, register_synthesis_tools
from steward.tools.registry import ToolDefinition, ToolRegistry

FIXED_NOW = datetime(2025, 9, 17, 10, 0, tzinfo=timezone.utc)  # a Wednesday

PLANNER_MARKER = "Planning Instructions:"
EVALUATOR_MARKER = "Start your reply with exactly one of"
VALIDATION_MARKER = "FORMAT_ACCEPTABLE or FORMAT_NEEDS_REFINEMENT"
SYNTHESIS_MARKER = "CONFIRMED ACTIONS:"

Reply = Union[str, Exception, Callable[[str], str]]


def make_settings(**orchestrator: Any) -> Settings:
    return Settings(
        environment="test",
        providers=ProviderSettings(openai_api_key="test-key", max_retries=0),
        orchestrator=OrchestratorSettings(**orchestrator),
        knowledge=KnowledgeSettings(config_path="/nonexistent/knowledge-search.json"),
    )


def plan_reply(*steps: dict[str, Any], analysis: str = "The user needs data from their tools.") -> str:
    return f"ANALYSIS: {analysis}\n\nPLAN:\n```json\n{json.dumps(list(steps))}\n```"


def step(tool: str, goal: str | None = None, **parameters: Any) -> dict[str, Any]:
    return {"goal": goal or f"Run {tool}", "tool": tool, "parameters": parameters}


class StubProvider:
    """Scripted stand-in for ProviderClient keyed by the prompt phase."""

    def __init__(
        self,
        *,
        planner: Iterable[Reply] = (),
        evaluator: Iterable[Reply] = (),
        validation: Iterable[Reply] = (),
        synthesis: Iterable[Reply] = (),
    ) -> None:
        self.replies: dict[str, deque[Reply]] = {
            "planner": deque(planner),
            "evaluator": deque(evaluator),
            "validation": deque(validation),
            "synthesis": deque(synthesis),
        }
        self.defaults: dict[str, str] = {
            "planner": plan_reply(analysis="Nothing else to do."),
            "evaluator": "COMPLETE: the request is satisfied.",
            "validation": "FORMAT_ACCEPTABLE",
            "synthesis": "Here is what I found.\nREASONING: based on the recorded tool results.",
        }
        self.calls: list[dict[str, Any]] = []
        self.started = False

    async def start(self) -> None:
        self.started = True

    async def aclose(self) -> None:
        self.started = False

    @staticmethod
    def phase_of(prompt: str) -> str:
        if SYNTHESIS_MARKER in prompt:
            return "synthesis"
        if VALIDATION_MARKER in prompt:
            return "validation"
        if EVALUATOR_MARKER in prompt:
            return "evaluator"
        if PLANNER_MARKER in prompt:
            return "planner"
        return "unknown"

    def prompts(self, phase: str) -> list[str]:
        return [call["prompt"] for call in self.calls if call["phase"] == phase]

    async def generate(
        self,
        prompt: str,
        config: ProviderConfig,
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        images: Sequence[str] | None = None,
        file_ids: Sequence[str] | None = None,
        system_prompt: str | None = None,
    ) -> ProviderReply:
        phase = self.phase_of(prompt)
        self.calls.append(
            {
                "phase": phase,
                "prompt": prompt,
                "model": model or config.model,
                "max_tokens": max_tokens,
                "images": list(images or []),
                "file_ids": list(file_ids or []),
            }
        )
        queue = self.replies.get(phase)
        reply: Reply = queue.popleft() if queue else self.defaults.get(phase, "")
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return ProviderReply(text=reply)


class FakeTool:
    """Records invocations and tracks how many calls overlap in time."""

    def __init__(self, name: str, *, data: Any = None, result: ToolResult | None = None, delay: float = 0.0) -> None:
        self.name = name
        self.data = data if data is not None else {"items": [f"{name} result"]}
        self.result = result
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.side_effect: Callable[[], None] | None = None

    async def __call__(self, parameters: dict[str, Any]) -> ToolResult:
        self.calls.append(parameters)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.side_effect is not None:
            self.side_effect()
        return self.result or ToolResult.ok(self.data)


class CallLog:
    """Wraps ``ToolRegistry.execute`` to remember the order of every tool name dispatched."""

    def __init__(self, registry: ToolRegistry) -> None:
        self.names: list[str] = []
        original = registry.execute

        async def execute(name: str, parameters: Any = None) -> ToolResult:
            self.names.append(name)
            return await original(name, parameters)

        registry.execute = execute  # type: ignore[method-assign]

    def count(self, name: str) -> int:
        return self.names.count(name)


def build_registry(
    tools: Iterable[FakeTool],
    provider: StubProvider,
    settings: Settings,
    *,
    categories: dict[str, str] | None = None,
) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in tools:
        registry.register(
            ToolDefinition(
                name=tool.name,
                description=f"Fake {tool.name}",
                category=(categories or {}).get(tool.name, "general"),
                executor=tool,
            )
        )
    register_synthesis_tools(registry, Synthesizer(provider, settings))  # type: ignore[arg-type]
    return registry
