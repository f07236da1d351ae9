"""Sandbox layer: per-agent isolated remote execution sessions."""

from .manager import SandboxManager
from .providers import (
    E2BProvider,
    MockCommandOutput,
    MockSandboxProvider,
    SandboxProvider,
    SandboxProviderFactory,
    SandboxSession,
)

__all__ = [
    "E2BProvider",
    "MockCommandOutput",
    "MockSandboxProvider",
    "SandboxManager",
    "SandboxProvider",
    "SandboxProviderFactory",
    "SandboxSession",
]
