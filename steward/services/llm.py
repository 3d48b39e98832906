from __future__ import annotations

import asyncio
from typing import Any, Callable, Sequence

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    convert_to_openai_messages,
)
from langchain_ollama import ChatOllama
from openai import AsyncOpenAI

from ..core.config import Settings, get_settings
from ..core.logging import get_logger
from ..schemas.orchestration import ProviderConfig, ProviderReply
from ..tools.exceptions import ProviderCallError, ProviderConfigurationError

logger = get_logger(name=__name__)

OLLAMA_PREFIX = "ollama/"

ChatModelFactory = Callable[[ProviderConfig, dict[str, Any]], Any]


def _build_base_url(host: str, port: int) -> str:
    if ":" in host.rsplit("/", maxsplit=1)[-1]:
        return host.rstrip("/")
    return f"{host.rstrip('/')}:{port}"


def resolve_provider_config(model: str, settings: Settings | None = None) -> ProviderConfig:
    """Map a model identifier to the backend and credentials that serve it.

    ``ollama/<name>`` runs locally, identifiers carrying ``/`` or ``:`` are
    routed through OpenRouter, anything else goes to OpenAI directly.
    """
    settings = settings or get_settings()
    providers = settings.providers
    model = model.strip()
    if not model:
        raise ProviderConfigurationError("Model identifier must not be empty")
    if model.startswith(OLLAMA_PREFIX):
        return ProviderConfig(
            provider="ollama",
            model=model[len(OLLAMA_PREFIX):],
            base_url=_build_base_url(providers.ollama_host, providers.ollama_port),
        )
    if "/" in model or ":" in model:
        if not providers.openrouter_api_key:
            raise ProviderConfigurationError(
                f"PROVIDERS__OPENROUTER_API_KEY is required for model '{model}' but is not configured"
            )
        return ProviderConfig(
            provider="openrouter",
            model=model,
            base_url=providers.openrouter_base_url,
            api_key=providers.openrouter_api_key,
        )
    if not providers.openai_api_key:
        raise ProviderConfigurationError(f"PROVIDERS__OPENAI_API_KEY is required for model '{model}' but is not configured")
    return ProviderConfig(
        provider="openai",
        model=model,
        base_url=providers.openai_base_url,
        api_key=providers.openai_api_key,
    )


def _messages_from_text(
    prompt: str,
    system_prompt: str | None = None,
    images: Sequence[str] | None = None,
) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if system_prompt:
        messages.append(SystemMessage(content=system_prompt))
    if images:
        parts: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        parts.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
        messages.append(HumanMessage(content=parts))
    else:
        messages.append(HumanMessage(content=prompt))
    return messages


class OpenAIChatModel:
    """Chat Completions backend for OpenAI and OpenRouter, invoked with LangChain messages."""

    def __init__(self, config: ProviderConfig, options: dict[str, Any]) -> None:
        self._config = config
        self._client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url, max_retries=0)
        self._request_options: dict[str, Any] = {}
        if "temperature" in options:
            self._request_options["temperature"] = options["temperature"]
        if "max_tokens" in options:
            # OpenAI reasoning models only accept the newer parameter name.
            key = "max_completion_tokens" if config.provider == "openai" else "max_tokens"
            self._request_options[key] = options["max_tokens"]

    async def ainvoke(self, messages: Sequence[BaseMessage]) -> str:
        response = await self._client.chat.completions.create(
            model=self._config.model,
            messages=convert_to_openai_messages(list(messages)),
            **self._request_options,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def aclose(self) -> None:
        await self._client.close()


def _default_chat_model(config: ProviderConfig, options: dict[str, Any]) -> Any:
    if config.provider == "ollama":
        kwargs: dict[str, Any] = {"model": config.model, "base_url": config.base_url}
        if "temperature" in options:
            kwargs["temperature"] = options["temperature"]
        if "max_tokens" in options:
            kwargs["num_predict"] = options["max_tokens"]
        return ChatOllama(**kwargs)
    return OpenAIChatModel(config, options)


class ProviderClient:
    """LangChain-backed text generation client with an explicit lifecycle.

    Chat models are created per ``(provider, model, base_url, options)`` and
    cached on the instance only, so separate clients never share connections.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        chat_model_factory: ChatModelFactory | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._factory = chat_model_factory or _default_chat_model
        self._models: dict[tuple[Any, ...], Any] = {}
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        self._started = True

    async def aclose(self) -> None:
        models = list(self._models.values())
        self._models.clear()
        self._started = False
        for model in models:
            closer = getattr(model, "aclose", None)
            if closer is not None:
                await closer()

    async def __aenter__(self) -> "ProviderClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def _generation_options(self, config: ProviderConfig, max_tokens: int | None) -> dict[str, Any]:
        providers = self._settings.providers
        options: dict[str, Any] = {}
        if config.model not in providers.temperature_locked_models:
            options["temperature"] = providers.temperature
        if max_tokens is not None:
            options["max_tokens"] = max_tokens
        return options

    def _chat_model(self, config: ProviderConfig, options: dict[str, Any]) -> Any:
        key = (config.provider, config.model, config.base_url, tuple(sorted(options.items())))
        cached = self._models.get(key)
        if cached is None:
            cached = self._factory(config, options)
            self._models[key] = cached
        return cached

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
        """Generate text, retrying with exponential backoff before raising ``ProviderCallError``."""
        if not self._started:
            await self.start()
        if model and model != config.model:
            config = config.model_copy(update={"model": model})
        options = self._generation_options(config, max_tokens)
        client = self._chat_model(config, options)
        messages = _messages_from_text(prompt, system_prompt, images)
        if file_ids:
            logger.debug("provider_file_ids_attached", model=config.model, file_ids=list(file_ids))

        providers = self._settings.providers
        attempts = providers.max_retries + 1
        last_error: Exception | None = None
        for attempt in range(attempts):
            try:
                result = await asyncio.wait_for(
                    client.ainvoke(messages),
                    timeout=providers.request_timeout_seconds,
                )
                return ProviderReply(text=_extract_content(result))
            except asyncio.TimeoutError:
                last_error = asyncio.TimeoutError(
                    f"Provider request timed out after {providers.request_timeout_seconds} seconds"
                )
                logger.warning("provider_generation_timeout", attempt=attempt + 1, model=config.model)
            except Exception as exc:
                last_error = exc
                logger.warning(
                    "provider_generation_retry",
                    attempt=attempt + 1,
                    max_attempts=attempts,
                    error=str(exc),
                    model=config.model,
                )
            if attempt < attempts - 1:
                delay = min(providers.retry_base_delay_seconds * (2**attempt), providers.retry_max_delay_seconds)
                await asyncio.sleep(delay)

        logger.error(
            "provider_generation_failed",
            error=str(last_error) if last_error else "Unknown error",
            model=config.model,
            provider=config.provider,
            attempts=attempts,
        )
        raise ProviderCallError(f"Generation failed after {attempts} attempt(s): {last_error}") from last_error


def _extract_content(result: Any) -> str:
    content = result.content if isinstance(result, AIMessage) or hasattr(result, "content") else result
    if isinstance(content, list):
        return " ".join(
            str(item.get("text", "")) if isinstance(item, dict) else str(item)
            for item in content
        )
    return str(content)
