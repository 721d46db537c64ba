"""LLM provider adapters."""

from toolstream.providers.base import ModelProvider

__all__ = ["ModelProvider"]
