"""Completion gateway: providers and the agent runner."""

from .providers import AnthropicProvider, BaseProvider, MockProvider, ProviderFactory
from .runner import DEFAULT_MAX_TOKENS, DEFAULT_MODEL, AgentRunner

__all__ = [
    "AgentRunner",
    "AnthropicProvider",
    "BaseProvider",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MODEL",
    "MockProvider",
    "ProviderFactory",
]
