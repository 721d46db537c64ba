"""Exception hierarchy for toolstream.

Every module imports from here. The hierarchy is:

    ToolstreamError
    ├── ConfigError
    │   └── UnknownStageError(stage)
    ├── RegistryError(stage)
    ├── ToolExecutionError(tool_name)
    └── ProviderError(provider_id)
        ├── ProviderAuthError
        ├── ProviderRateLimitError(retry_after)
        ├── ProviderTimeoutError
        ├── ProviderOverloadedError
        └── ModelNotFoundError
"""

from __future__ import annotations


class ToolstreamError(Exception):
    """Base exception for all toolstream errors."""


# ─── Configuration Errors ─────────────────────────────────────


class ConfigError(ToolstreamError):
    """Invalid configuration or request."""


class UnknownStageError(ConfigError):
    """Stage tag is not one of the known deployment stages."""

    def __init__(self, stage: object) -> None:
        self.stage = stage
        super().__init__(f"Unknown stage: {stage!r} (expected 'prod' or 'test')")


# ─── Registry Errors ──────────────────────────────────────────


class RegistryError(ToolstreamError):
    """Tool registry unreachable, rejecting, or failed to list tools."""

    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"[registry:{stage}] {message}")


class ToolExecutionError(ToolstreamError):
    """A single tool call failed. Never fatal to the request."""

    def __init__(self, tool_name: str, message: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"[tool:{tool_name}] {message}")


# ─── Provider Errors ──────────────────────────────────────────


class ProviderError(ToolstreamError):
    """Base for provider-related errors."""

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(f"[{provider_id}] {message}")


class ProviderAuthError(ProviderError):
    """Invalid or missing API key."""


class ProviderRateLimitError(ProviderError):
    """Rate limit exceeded. Includes retry_after if available."""

    def __init__(self, provider_id: str, retry_after: float | None = None) -> None:
        self.retry_after = retry_after
        msg = "Rate limited"
        if retry_after is not None:
            msg += f" (retry after {retry_after}s)"
        super().__init__(provider_id, msg)


class ProviderTimeoutError(ProviderError):
    """Model call timed out."""


class ProviderOverloadedError(ProviderError):
    """Provider is overloaded (529, 503)."""


class ModelNotFoundError(ProviderError):
    """Requested model not available from this provider."""
