from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from .core.config import Settings, get_settings
from .core.logging import configure_logging, get_logger
from .orchestration.orchestrator import Orchestrator
from .services.llm import ProviderClient
from .services.synthesis import Synthesizer, register_synthesis_tools
from .tools.http_source import build_http_sources
from .tools.registry import ToolDefinition, ToolRegistry

logger = get_logger(name=__name__)


@asynccontextmanager
async def orchestrator_lifespan(
    settings: Settings | None = None,
    *,
    tools: Iterable[ToolDefinition] = (),
    provider: ProviderClient | None = None,
) -> AsyncIterator[Orchestrator]:
    """Wire registry, provider and external tool servers, and tear them down on exit."""
    settings = settings or get_settings()
    configure_logging(settings.observability.log_level, json_output=settings.observability.json_logs)

    provider = provider or ProviderClient(settings)
    registry = ToolRegistry()
    registry.register_many(tools)
    register_synthesis_tools(registry, Synthesizer(provider, settings))
    sources = build_http_sources(settings)
    for source in sources:
        registry.add_source(source)

    await provider.start()
    logger.info("orchestrator_started", local_tools=len(registry.list_available()), tool_servers=len(sources))
    try:
        yield Orchestrator(registry, provider, settings=settings)
    finally:
        for source in sources:
            await source.aclose()
        await provider.aclose()
        logger.info("orchestrator_stopped")
