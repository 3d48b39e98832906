from __future__ import annotations


class StewardError(RuntimeError):
    """Base class for failures raised inside the orchestration core."""


class ToolError(StewardError):
    """Base class for tooling-related failures."""


class ToolInvocationError(ToolError):
    """Raised when a tool invocation fails inside a tool source."""


class ToolTimeoutError(ToolInvocationError):
    """Raised when a tool invocation exceeds the configured timeout."""


class ToolNotFoundError(ToolError):
    """Raised when a requested tool cannot be resolved."""


class ProviderError(StewardError):
    """Base class for language-model provider failures."""


class ProviderConfigurationError(ProviderError):
    """Raised when a model identifier cannot be mapped to usable credentials."""


class ProviderCallError(ProviderError):
    """Raised when generation fails after all retry attempts."""


class ConfigLoadError(StewardError):
    """Raised when an optional configuration file cannot be read."""
