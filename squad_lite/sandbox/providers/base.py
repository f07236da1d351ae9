"""Base sandbox provider interface.

A provider allocates remote, isolated execution sessions. Every
implementation (E2B, mock, ...) must implement :class:`SandboxProvider`
and hand out :class:`SandboxSession` objects.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable


class SandboxSession(ABC):
    """Handle to one live remote sandbox session."""

    @property
    @abstractmethod
    def sandbox_id(self) -> str:
        """Remote session identifier. Stable across pause/resume."""
        pass

    @abstractmethod
    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> int:
        """Run a command, streaming output to the callbacks.

        Returns:
            Process exit code.

        Raises:
            SandboxTimeoutError: If the command exceeds its timeout.
            SandboxProviderError: On transport failure.
        """
        pass

    @abstractmethod
    async def pause(self) -> None:
        """Hibernate the session."""
        pass

    @abstractmethod
    async def kill(self) -> None:
        """Terminate the session permanently."""
        pass


class SandboxProvider(ABC):
    """Abstract base class for remote sandbox providers."""

    name: str = ""

    @abstractmethod
    async def create(
        self,
        api_key: str | None,
        timeout_ms: int,
        metadata: dict[str, Any],
    ) -> SandboxSession:
        """Allocate a new session tagged with metadata."""
        pass

    @abstractmethod
    async def connect(self, sandbox_id: str, api_key: str | None) -> SandboxSession:
        """Reconnect to an existing (possibly paused) session."""
        pass


class SandboxProviderFactory:
    """Registry of sandbox provider classes by name."""

    _providers: dict[str, type[SandboxProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[SandboxProvider]) -> None:
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> SandboxProvider:
        """Create a provider instance.

        Raises:
            KeyError: If provider not registered.
        """
        if name not in cls._providers:
            raise KeyError(f"Sandbox provider '{name}' not registered")
        return cls._providers[name](**kwargs)

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())
