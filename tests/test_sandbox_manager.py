"""Tests for the sandbox lifecycle manager."""

import pytest

from squad_lite.events import EventEmitter, EventType
from squad_lite.exceptions import (
    CommandExecutionError,
    CommandTimeoutError,
    SandboxCreationError,
    SandboxError,
    SandboxNotFoundError,
)
from squad_lite.sandbox import MockCommandOutput, MockSandboxProvider, SandboxManager
from squad_lite.store import Store
from squad_lite.types import (
    AgentType,
    CommandOptions,
    SandboxConfig,
    SandboxStatus,
    SandboxTrackingStatus,
    Specialization,
)


def make_manager(**provider_kwargs):
    provider = MockSandboxProvider(**provider_kwargs)
    store = Store.in_memory()
    events = EventEmitter()
    manager = SandboxManager(provider, store, events=events, cost_per_cpu_hour=0.0504)
    return manager, provider, store, events


def specialist_config(agent_id="agent-1", **kwargs):
    return SandboxConfig(
        agent_id=agent_id,
        agent_type=AgentType.SPECIALIST,
        specialization=Specialization.RESEARCHER,
        **kwargs,
    )


class TestCreate:
    """Tests for sandbox creation."""

    @pytest.mark.asyncio
    async def test_create_tracks_active_sandbox(self):
        manager, provider, store, events = make_manager()

        instance = await manager.create(specialist_config())

        assert instance.status == SandboxStatus.ACTIVE
        assert manager.is_running("agent-1")

        record = await manager.get_tracking(instance.sandbox_id)
        assert record.status == SandboxTrackingStatus.ACTIVE
        assert record.agent_id == "agent-1"
        assert record.metadata.specialization == Specialization.RESEARCHER
        assert record.resources.cpu_count == 2
        assert record.resources.memory_mb == 512
        assert record.resources.timeout_ms == 600_000

        remote = provider.sandboxes[instance.sandbox_id]
        assert remote.metadata["agentId"] == "agent-1"
        assert remote.metadata["specialization"] == "researcher"

        assert events.history(EventType.SANDBOX_EVENT)[-1].data["event"] == "created"

    @pytest.mark.asyncio
    async def test_custom_resources(self):
        manager, _, _, _ = make_manager()

        instance = await manager.create(specialist_config(timeout_ms=1000, cpu_count=4, memory_mb=2048))

        record = await manager.get_tracking(instance.sandbox_id)
        assert record.resources.timeout_ms == 1000
        assert record.resources.cpu_count == 4
        assert record.to_document()["resources"]["memoryMB"] == 2048

    @pytest.mark.asyncio
    async def test_second_live_sandbox_rejected(self):
        manager, provider, _, _ = make_manager()
        await manager.create(specialist_config())

        with pytest.raises(SandboxCreationError):
            await manager.create(specialist_config())

        assert provider.create_calls == 1

    @pytest.mark.asyncio
    async def test_provider_failure(self):
        manager, _, store, _ = make_manager(fail_create=True)

        with pytest.raises(SandboxCreationError):
            await manager.create(specialist_config())

        assert manager.get("agent-1") is None
        assert await store.sandbox_tracking.count() == 0

    @pytest.mark.asyncio
    async def test_recreate_after_kill(self):
        manager, _, _, _ = make_manager()
        first = await manager.create(specialist_config())
        await manager.kill("agent-1")

        second = await manager.create(specialist_config())

        assert second.sandbox_id != first.sandbox_id
        assert len(await manager.list_tracking("agent-1")) == 2


class TestExecute:
    """Tests for command execution."""

    @pytest.mark.asyncio
    async def test_streams_and_accumulates_output(self):
        manager, provider, _, _ = make_manager(
            responses={"build": MockCommandOutput(stdout="a\nb\n", stderr="warn\n", exit_code=2)}
        )
        await manager.create(specialist_config())
        chunks = []

        result = await manager.execute("agent-1", "build", CommandOptions(on_stdout=chunks.append))

        assert chunks == ["a\n", "b\n"]
        assert result.stdout == "a\nb\n"
        assert result.stderr == "warn\n"
        assert result.exit_code == 2
        assert result.error is True

    @pytest.mark.asyncio
    async def test_echo(self):
        manager, _, _, _ = make_manager()
        await manager.create(specialist_config())

        result = await manager.execute("agent-1", "echo hello")

        assert result.stdout == "hello\n"
        assert result.error is False

    @pytest.mark.asyncio
    async def test_unknown_agent(self):
        manager, _, _, _ = make_manager()

        with pytest.raises(SandboxNotFoundError):
            await manager.execute("nobody", "ls")

    @pytest.mark.asyncio
    async def test_timeout(self):
        manager, _, _, _ = make_manager(responses={"sleep 99": MockCommandOutput(timeout=True)})
        await manager.create(specialist_config())

        with pytest.raises(CommandTimeoutError) as exc_info:
            await manager.execute("agent-1", "sleep 99", CommandOptions(timeout_ms=10))

        assert exc_info.value.command == "sleep 99"

    @pytest.mark.asyncio
    async def test_failure_while_paused(self):
        manager, _, _, _ = make_manager()
        await manager.create(specialist_config())
        await manager.pause("agent-1")

        with pytest.raises(CommandExecutionError) as exc_info:
            await manager.execute("agent-1", "ls")

        assert exc_info.value.exit_code == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_captured_stderr(self):
        manager, _, _, _ = make_manager(
            responses={"make": MockCommandOutput(stderr="cc: warning\n", disconnect=True)}
        )
        await manager.create(specialist_config())

        with pytest.raises(CommandExecutionError) as exc_info:
            await manager.execute("agent-1", "make")

        assert exc_info.value.stderr == "cc: warning\n"
        assert "connection lost" in str(exc_info.value.__cause__)


class TestPauseResume:
    """Tests for hibernation."""

    @pytest.mark.asyncio
    async def test_pause_then_resume_keeps_sandbox_id(self):
        manager, provider, _, _ = make_manager()
        instance = await manager.create(specialist_config())

        await manager.pause("agent-1")
        paused = await manager.get_tracking(instance.sandbox_id)
        assert paused.status == SandboxTrackingStatus.PAUSED
        assert paused.lifecycle.paused_at is not None
        assert manager.get("agent-1").status == SandboxStatus.PAUSED

        await manager.resume("agent-1")
        resumed = await manager.get_tracking(instance.sandbox_id)
        assert resumed.status == SandboxTrackingStatus.ACTIVE
        assert resumed.lifecycle.resumed_at is not None
        assert resumed.lifecycle.paused_at == paused.lifecycle.paused_at
        assert manager.get("agent-1").sandbox_id == instance.sandbox_id
        assert provider.connect_calls == 1

        result = await manager.execute("agent-1", "echo back")
        assert result.stdout == "back\n"

    @pytest.mark.asyncio
    async def test_pause_unknown_agent(self):
        manager, _, _, _ = make_manager()

        with pytest.raises(SandboxNotFoundError):
            await manager.pause("nobody")

    @pytest.mark.asyncio
    async def test_resume_failure_restores_status(self):
        manager, provider, _, _ = make_manager()
        instance = await manager.create(specialist_config())
        await manager.pause("agent-1")

        # Remote sandbox expired while hibernated
        provider.sandboxes.pop(instance.sandbox_id)

        with pytest.raises(SandboxError):
            await manager.resume("agent-1")

        record = await manager.get_tracking(instance.sandbox_id)
        assert record.status == SandboxTrackingStatus.PAUSED


class TestKill:
    """Tests for termination."""

    @pytest.mark.asyncio
    async def test_kill_leaves_tombstone(self):
        manager, _, _, events = make_manager()
        instance = await manager.create(specialist_config())

        await manager.kill("agent-1")

        assert manager.get("agent-1") is None
        assert not manager.is_running("agent-1")
        record = await manager.get_tracking(instance.sandbox_id)
        assert record.status == SandboxTrackingStatus.KILLED
        assert record.lifecycle.killed_at is not None
        assert events.history(EventType.SANDBOX_EVENT)[-1].data["event"] == "killed"

    @pytest.mark.asyncio
    async def test_kill_after_pause_keeps_lifecycle_history(self):
        manager, _, _, _ = make_manager()
        instance = await manager.create(specialist_config())
        await manager.pause("agent-1")

        await manager.kill("agent-1")

        record = await manager.get_tracking(instance.sandbox_id)
        assert record.status == SandboxTrackingStatus.KILLED
        assert record.lifecycle.killed_at is not None
        assert record.lifecycle.paused_at is not None
        assert record.lifecycle.paused_at <= record.lifecycle.killed_at
        assert record.lifecycle.resumed_at is None

    @pytest.mark.asyncio
    async def test_kill_is_idempotent(self):
        manager, _, _, _ = make_manager()
        await manager.create(specialist_config())

        await manager.kill("agent-1")
        await manager.kill("agent-1")
        await manager.kill("never-existed")

    @pytest.mark.asyncio
    async def test_remote_kill_failure_still_clears_state(self):
        manager, _, _, _ = make_manager(fail_kill=True)
        instance = await manager.create(specialist_config())

        await manager.kill("agent-1")

        assert manager.get("agent-1") is None
        assert (await manager.get_tracking(instance.sandbox_id)).status == SandboxTrackingStatus.KILLED

    @pytest.mark.asyncio
    async def test_kill_all(self):
        manager, _, _, _ = make_manager()
        await manager.create(specialist_config("a"))
        await manager.create(specialist_config("b"))

        assert await manager.kill_all() == 2
        assert manager.list() == []


class TestReconciliation:
    """Tests for rebuilding state from the store."""

    @pytest.mark.asyncio
    async def test_reattach_from_another_manager(self):
        manager, provider, store, _ = make_manager()
        instance = await manager.create(specialist_config())

        restarted = SandboxManager(provider, store)
        orphans = await restarted.sync_from_store()
        assert [o.sandbox_id for o in orphans] == [instance.sandbox_id]

        reattached = await restarted.reattach("agent-1")

        assert reattached.sandbox_id == instance.sandbox_id
        assert restarted.find_by_sandbox_id(instance.sandbox_id) is reattached
        assert await restarted.sync_from_store() == []

    @pytest.mark.asyncio
    async def test_reattach_without_record(self):
        manager, _, _, _ = make_manager()

        with pytest.raises(SandboxNotFoundError):
            await manager.reattach("nobody")
