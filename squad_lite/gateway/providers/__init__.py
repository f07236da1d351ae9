"""Completion providers for squad-lite."""

from .anthropic import AnthropicProvider
from .base import BaseProvider, ProviderFactory
from .mock import MockProvider

ProviderFactory.register("anthropic", AnthropicProvider)
ProviderFactory.register("mock", MockProvider)

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "MockProvider",
    "ProviderFactory",
]
