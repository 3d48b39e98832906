from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING, Any, Literal, Mapping

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:  # pragma: no cover
    from ..schemas.orchestration import OrchestratorConfig


class OrchestratorSettings(BaseModel):
    max_steps: int = Field(10, ge=2, description="Upper bound on recorded orchestration steps per run.")
    max_tool_calls: int = Field(5, ge=0, description="Upper bound on executed tool calls per run.")
    development_mode: bool = Field(False, description="Return partial step logs on failure and all steps on success.")
    read_only_batch_limit: int = Field(4, ge=1, description="Maximum read-only tool calls dispatched together.")
    default_model: str = Field("gpt-4o-mini", description="Model used when the caller does not pick one.")
    planner_max_tokens: int = Field(1200, ge=64)
    evaluator_max_tokens: int = Field(300, ge=16)
    validation_max_tokens: int = Field(200, ge=16)
    synthesis_max_tokens: int = Field(1500, ge=64)
    validation_enabled: bool = Field(
        True,
        description="Ask the model whether the final answer matches the requested format (log only).",
    )


class ProviderSettings(BaseModel):
    openai_api_key: str | None = Field(default=None, description="API key for api.openai.com.")
    openai_base_url: str = Field("https://api.openai.com/v1")
    openrouter_api_key: str | None = Field(default=None, description="API key for OpenRouter hosted models.")
    openrouter_base_url: str = Field("https://openrouter.ai/api/v1")
    ollama_host: str = Field("http://localhost", description="Base URL where Ollama is running.")
    ollama_port: int = Field(11434, ge=1, le=65535)
    temperature: float = Field(0.1, ge=0.0, le=2.0)
    temperature_locked_models: list[str] = Field(
        default_factory=lambda: ["o3", "o3-mini", "o4-mini", "o4-mini-high"],
        description="Models that reject an explicit temperature parameter.",
    )
    max_retries: int = Field(2, ge=0, description="Retries after the first failed generation attempt.")
    retry_base_delay_seconds: float = Field(1.0, ge=0.0)
    retry_max_delay_seconds: float = Field(8.0, ge=0.0)
    request_timeout_seconds: float = Field(60.0, gt=0.0)


class KnowledgeSettings(BaseModel):
    config_path: str = Field(
        "settings/knowledge-search.json",
        description="JSON file listing knowledge index identifiers.",
    )


class ToolServerSettings(BaseModel):
    endpoints: list[str] = Field(default_factory=list, description="Base URLs of external HTTP tool servers.")
    timeout_seconds: float = Field(15.0, gt=0.0)
    max_retries: int = Field(1, ge=0)


class SchedulingSettings(BaseModel):
    timezone: str = Field("UTC", description="Timezone used when scaffolding events from relative dates.")


class ObservabilitySettings(BaseModel):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    json_logs: bool = Field(True, description="Render log events as JSON; console rendering otherwise.")


class Settings(BaseSettings):
    environment: Literal["local", "test", "production"] = Field("local")

    orchestrator: OrchestratorSettings = Field(default_factory=OrchestratorSettings)  # type: ignore[arg-type]
    providers: ProviderSettings = Field(default_factory=ProviderSettings)  # type: ignore[arg-type]
    knowledge: KnowledgeSettings = Field(default_factory=KnowledgeSettings)  # type: ignore[arg-type]
    tool_servers: ToolServerSettings = Field(default_factory=ToolServerSettings)  # type: ignore[arg-type]
    scheduling: SchedulingSettings = Field(default_factory=SchedulingSettings)  # type: ignore[arg-type]
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)  # type: ignore[arg-type]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    def orchestrator_config(self) -> "OrchestratorConfig":
        from ..schemas.orchestration import OrchestratorConfig

        return OrchestratorConfig(
            max_steps=self.orchestrator.max_steps,
            max_tool_calls=self.orchestrator.max_tool_calls,
            development_mode=self.orchestrator.development_mode,
        )


@lru_cache(maxsize=1)
def _get_cached_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def get_settings(overrides: Mapping[str, Any] | None = None) -> Settings:
    """Return settings, using cached defaults unless overrides are provided."""
    if overrides:
        return Settings(**dict(overrides))
    return _get_cached_settings()
