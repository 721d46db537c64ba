"""Remote tool registries and per-request stage selection."""

from toolstream.registry.client import RegistryClient, RegistryTool, ToolSet
from toolstream.registry.router import StageRouter

__all__ = ["RegistryClient", "RegistryTool", "StageRouter", "ToolSet"]
