"""Mock sandbox provider for testing without a remote service."""

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable

from ...exceptions import SandboxProviderError, SandboxTimeoutError
from .base import SandboxProvider, SandboxSession


@dataclass
class MockCommandOutput:
    """Scripted outcome of a command run in a mock sandbox."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    timeout: bool = False
    disconnect: bool = False  # Connection drops after the output is streamed


CommandHandler = Callable[[str], MockCommandOutput]


@dataclass
class _RemoteState:
    """Server-side view of a mock sandbox."""

    sandbox_id: str
    metadata: dict[str, Any]
    timeout_ms: int
    status: str = "running"  # running | paused | killed
    commands: list[str] = field(default_factory=list)


class MockSandboxSession(SandboxSession):
    def __init__(self, provider: "MockSandboxProvider", state: _RemoteState):
        self._provider = provider
        self._state = state

    @property
    def sandbox_id(self) -> str:
        return self._state.sandbox_id

    @property
    def remote_status(self) -> str:
        return self._state.status

    async def run(
        self,
        command: str,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        timeout_ms: int | None = None,
        on_stdout: Callable[[str], None] | None = None,
        on_stderr: Callable[[str], None] | None = None,
    ) -> int:
        await asyncio.sleep(self._provider.latency_ms / 1000)
        if self._state.status != "running":
            raise SandboxProviderError("mock", f"sandbox {self.sandbox_id} is {self._state.status}")

        self._state.commands.append(command)
        output = self._provider.handle(command)
        if output.timeout:
            raise SandboxTimeoutError("mock", f"command timeout after {timeout_ms}ms")

        # Stream line by line the way a remote process would
        for chunk in output.stdout.splitlines(keepends=True):
            if on_stdout:
                on_stdout(chunk)
        for chunk in output.stderr.splitlines(keepends=True):
            if on_stderr:
                on_stderr(chunk)
        if output.disconnect:
            raise SandboxProviderError("mock", "connection lost")
        return output.exit_code

    async def pause(self) -> None:
        self._state.status = "paused"

    async def kill(self) -> None:
        if self._provider.fail_kill:
            raise SandboxProviderError("mock", "Simulated kill failure")
        if self._state.status == "killed" and self._provider.fail_on_double_kill:
            raise SandboxProviderError("mock", f"sandbox {self.sandbox_id} already killed")
        self._state.status = "killed"


class MockSandboxProvider(SandboxProvider):
    """Mock sandbox provider.

    Commands are answered by a handler function, a dict of exact-match
    responses, or by echoing. Failures can be injected per operation.

    Example:
        provider = MockSandboxProvider(responses={"ls": MockCommandOutput(stdout="a.txt\\n")})
    """

    name = "mock"

    def __init__(
        self,
        responses: dict[str, MockCommandOutput] | None = None,
        handler: CommandHandler | None = None,
        latency_ms: float = 0,
        fail_create: bool = False,
        fail_kill: bool = False,
    ):
        self._responses = responses or {}
        self._handler = handler
        self.latency_ms = latency_ms
        self.fail_create = fail_create
        self.fail_kill = fail_kill
        self.fail_on_double_kill = True
        self.sandboxes: dict[str, _RemoteState] = {}
        self.create_calls = 0
        self.connect_calls = 0

    def handle(self, command: str) -> MockCommandOutput:
        if self._handler:
            return self._handler(command)
        if command in self._responses:
            return self._responses[command]
        if command.startswith("echo "):
            return MockCommandOutput(stdout=command[5:] + "\n")
        return MockCommandOutput()

    def set_response(self, command: str, output: MockCommandOutput) -> None:
        self._responses[command] = output

    async def create(
        self,
        api_key: str | None,
        timeout_ms: int,
        metadata: dict[str, Any],
    ) -> SandboxSession:
        self.create_calls += 1
        await asyncio.sleep(self.latency_ms / 1000)
        if self.fail_create:
            raise SandboxProviderError("mock", "Simulated creation failure")

        sandbox_id = f"sbx-{uuid.uuid4().hex[:12]}"
        state = _RemoteState(sandbox_id=sandbox_id, metadata=dict(metadata), timeout_ms=timeout_ms)
        self.sandboxes[sandbox_id] = state
        return MockSandboxSession(self, state)

    async def connect(self, sandbox_id: str, api_key: str | None) -> SandboxSession:
        self.connect_calls += 1
        state = self.sandboxes.get(sandbox_id)
        if state is None or state.status == "killed":
            raise SandboxProviderError("mock", f"sandbox {sandbox_id} not found")
        state.status = "running"
        return MockSandboxSession(self, state)
