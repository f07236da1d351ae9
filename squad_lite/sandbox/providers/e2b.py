"""E2B sandbox provider implementation."""

from typing import Any, Callable

from ...exceptions import SandboxProviderError, SandboxTimeoutError
from .base import SandboxProvider, SandboxSession


def _import_e2b() -> Any:
    try:
        import e2b
    except ImportError:
        raise ImportError(
            "E2B package not installed. Install with: pip install squad-lite[e2b]"
        )
    return e2b


class E2BSession(SandboxSession):
    """Wraps an ``e2b.AsyncSandbox``."""

    def __init__(self, sandbox: Any):
        self._sandbox = sandbox

    @property
    def sandbox_id(self) -> str:
        return self._sandbox.sandbox_id

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> int:
        e2b = _import_e2b()

        kwargs: dict[str, Any] = {}
        if cwd:
            kwargs["cwd"] = cwd
        if env:
            kwargs["envs"] = env
        if timeout_ms is not None:
            kwargs["timeout"] = timeout_ms / 1000
        if on_stdout:
            kwargs["on_stdout"] = on_stdout
        if on_stderr:
            kwargs["on_stderr"] = on_stderr

        try:
            result = await self._sandbox.commands.run(command, **kwargs)
        except e2b.CommandExitException as e:
            # Non-zero exit is a result, not a transport failure
            return e.exit_code
        except e2b.TimeoutException as e:
            raise SandboxTimeoutError("e2b", str(e) or "command timeout")
        except Exception as e:
            raise SandboxProviderError("e2b", str(e), e)
        return result.exit_code

    async def pause(self) -> None:
        # Older SDK releases only expose the beta name
        pause = getattr(self._sandbox, "beta_pause", None) or self._sandbox.pause
        await pause()

    async def kill(self) -> None:
        await self._sandbox.kill()


class E2BProvider(SandboxProvider):
    """E2B cloud sandboxes.

    Example:
        provider = E2BProvider()
        session = await provider.create(api_key="e2b_...", timeout_ms=600_000, metadata={})
    """

    name = "e2b"

    def __init__(self, template: str | None = None):
        self._template = template

    async def create(
        self,
        api_key: str | None,
        timeout_ms: int,
        metadata: dict[str, Any],
    ) -> SandboxSession:
        e2b = _import_e2b()

        kwargs: dict[str, Any] = {
            "timeout": max(1, timeout_ms // 1000),
            "metadata": {k: str(v) for k, v in metadata.items()},
        }
        if api_key:
            kwargs["api_key"] = api_key
        if self._template:
            kwargs["template"] = self._template

        sandbox = await e2b.AsyncSandbox.create(**kwargs)
        return E2BSession(sandbox)

    async def connect(self, sandbox_id: str, api_key: str | None) -> SandboxSession:
        e2b = _import_e2b()

        kwargs: dict[str, Any] = {}
        if api_key:
            kwargs["api_key"] = api_key
        sandbox = await e2b.AsyncSandbox.connect(sandbox_id, **kwargs)
        return E2BSession(sandbox)
