"""Sandbox provider implementations.

Supported providers:
- E2B (cloud sandboxes, requires the ``e2b`` package)
- Mock (for testing)
"""

from .base import SandboxProvider, SandboxProviderFactory, SandboxSession
from .e2b import E2BProvider
from .mock import MockCommandOutput, MockSandboxProvider

SandboxProviderFactory.register("e2b", E2BProvider)
SandboxProviderFactory.register("mock", MockSandboxProvider)

__all__ = [
    "E2BProvider",
    "MockCommandOutput",
    "MockSandboxProvider",
    "SandboxProvider",
    "SandboxProviderFactory",
    "SandboxSession",
]
