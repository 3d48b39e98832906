from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..core.config import Settings
from ..core.logging import get_logger
from ..schemas.orchestration import ToolResult
from .exceptions import ToolInvocationError, ToolTimeoutError
from .registry import ToolDescriptor, coerce_tool_result

logger = get_logger(name=__name__)


@dataclass(slots=True)
class HttpToolSourceConfig:
    base_url: str
    timeout_seconds: float = 15.0
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5
    default_headers: dict[str, str] = field(default_factory=dict)


class HttpToolSource:
    """External tool server reached over HTTP.

    ``GET /tools`` advertises ``[{"name", "description", "category"}]`` and
    ``POST /tools/{name}`` runs a tool with the JSON body as its parameters.
    """

    RETRY_STATUS_CODES = {408, 425, 429, 502, 503, 504}

    def __init__(self, config: HttpToolSourceConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self.name = config.base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            timeout=httpx.Timeout(config.timeout_seconds),
            headers=config.default_headers,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpToolSource":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def list_tools(self) -> list[ToolDescriptor]:
        response = await self._request("GET", "/tools")
        response.raise_for_status()
        payload = response.json()
        entries = payload.get("tools", []) if isinstance(payload, dict) else payload
        descriptors: list[ToolDescriptor] = []
        for entry in entries or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            descriptors.append(
                ToolDescriptor(
                    name=str(entry["name"]),
                    description=str(entry.get("description") or ""),
                    category=str(entry.get("category") or "external"),
                )
            )
        logger.info("http_tool_source_discovered", source=self.name, tools=len(descriptors))
        return descriptors

    async def call_tool(self, name: str, parameters: dict[str, Any]) -> ToolResult:
        response = await self._request("POST", f"/tools/{name}", json=parameters)
        if response.is_error:
            detail = _error_detail(response)
            logger.warning("http_tool_call_failed", source=self.name, tool=name, status=response.status_code)
            return ToolResult.fail(f"Tool '{name}' failed with status {response.status_code}: {detail}")
        try:
            body = response.json()
        except ValueError:
            return ToolResult.ok(response.text)
        return coerce_tool_result(body)

    async def _request(self, method: str, path: str, *, json: Any | None = None) -> httpx.Response:
        attempt = 0
        backoff = self._config.retry_backoff_seconds
        while True:
            attempt += 1
            try:
                response = await self._client.request(method, path, json=json)
            except httpx.TimeoutException as exc:
                if attempt > self._config.max_retries:
                    raise ToolTimeoutError(f"{method} {path} timed out") from exc
                logger.warning("http_tool_source_retry", source=self.name, path=path, reason="timeout")
            except httpx.RequestError as exc:
                if attempt > self._config.max_retries:
                    raise ToolInvocationError(f"{method} {path} failed: {exc}") from exc
                logger.warning("http_tool_source_retry", source=self.name, path=path, reason=str(exc))
            else:
                if response.status_code in self.RETRY_STATUS_CODES and attempt <= self._config.max_retries:
                    logger.warning(
                        "http_tool_source_retry",
                        source=self.name,
                        path=path,
                        reason=f"status_{response.status_code}",
                    )
                else:
                    return response
            await asyncio.sleep(backoff)
            backoff *= 2


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)[:200]
    return str(body)[:200]


def build_http_sources(settings: Settings) -> list[HttpToolSource]:
    """Create one source per configured tool server endpoint."""
    return [
        HttpToolSource(
            HttpToolSourceConfig(
                base_url=endpoint,
                timeout_seconds=settings.tool_servers.timeout_seconds,
                max_retries=settings.tool_servers.max_retries,
            )
        )
        for endpoint in settings.tool_servers.endpoints
    ]
