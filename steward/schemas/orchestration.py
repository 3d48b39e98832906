from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

StepType = Literal["analysis", "tool_call", "evaluation", "synthesis"]
ProviderName = Literal["openai", "openrouter", "ollama"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ToolResult(BaseModel):
    """Outcome of a single tool invocation as reported by the tool registry."""

    model_config = ConfigDict(frozen=True)

    success: bool
    data: Any = None
    message: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: Any = None, *, message: str | None = None) -> "ToolResult":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(cls, error: str, *, data: Any = None) -> "ToolResult":
        return cls(success=False, error=error, data=data)


class ToolExecution(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: ToolResult
    start_time: datetime
    end_time: datetime
    duration_ms: int = Field(0, ge=0)


class OrchestrationStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: StepType
    timestamp: datetime = Field(default_factory=utc_now)
    content: str = ""
    tool_execution: ToolExecution | None = None
    reasoning: str | None = None


class OrchestrationResult(BaseModel):
    success: bool
    run_id: str | None = None
    final_answer: str
    steps: list[OrchestrationStep] = Field(default_factory=list)
    tool_calls: list[ToolExecution] = Field(default_factory=list)
    error: str | None = None


class OrchestratorConfig(BaseModel):
    max_steps: int = Field(10, ge=2)
    max_tool_calls: int = Field(5, ge=0)
    development_mode: bool = False


class ConversationEntry(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatMessage(BaseModel):
    """Prior chat turn supplied by the caller."""

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime | None = None


class ProviderConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: ProviderName
    model: str
    base_url: str
    api_key: str | None = None


class ProviderReply(BaseModel):
    text: str
