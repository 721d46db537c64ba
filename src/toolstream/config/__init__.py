"""Configuration loading and validation."""

from toolstream.config.loader import load_config
from toolstream.config.schema import (
    ApiConfig,
    ChatConfig,
    LoggingConfig,
    ProviderConfig,
    RegistryConfig,
    ToolstreamConfig,
)

__all__ = [
    "ApiConfig",
    "ChatConfig",
    "LoggingConfig",
    "ProviderConfig",
    "RegistryConfig",
    "ToolstreamConfig",
    "load_config",
]
