"""Core errors shared by every layer."""

from toolstream.core.errors import (
    ConfigError,
    ModelNotFoundError,
    ProviderAuthError,
    ProviderError,
    ProviderOverloadedError,
    ProviderRateLimitError,
    ProviderTimeoutError,
    RegistryError,
    ToolExecutionError,
    ToolstreamError,
    UnknownStageError,
)

__all__ = [
    "ConfigError",
    "ModelNotFoundError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderOverloadedError",
    "ProviderRateLimitError",
    "ProviderTimeoutError",
    "RegistryError",
    "ToolExecutionError",
    "ToolstreamError",
    "UnknownStageError",
]
