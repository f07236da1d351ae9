"""Sandbox lifecycle manager.

Owns the mapping from agent id to a live remote sandbox session and mirrors
every transition into the ``sandbox_tracking`` collection:

    (absent) -> creating -> active <-> paused -> killed

Persistence is write-through, so a restarted manager (or any observer) can
reconstruct sandbox state from the store. The in-memory map only exists to
dispatch to the right live session handle; it is private to one manager.
"""

from datetime import datetime
from typing import Any

from ..events import EventEmitter, EventType
from ..exceptions import (
    CommandExecutionError,
    CommandTimeoutError,
    SandboxCreationError,
    SandboxError,
    SandboxNotFoundError,
    SandboxTimeoutError,
)
from ..store import Store
from ..types import (
    CommandOptions,
    CommandResult,
    SandboxConfig,
    SandboxCosts,
    SandboxInstance,
    SandboxLifecycle,
    SandboxMetadata,
    SandboxResources,
    SandboxStatus,
    SandboxTracking,
    SandboxTrackingStatus,
    Specialization,
    short_id,
)
from ..utils.logging import StructuredLogger
from .providers import SandboxProvider

DEFAULT_TIMEOUT_MS = 10 * 60 * 1000

_LIVE_TRACKING_STATUSES = [
    SandboxTrackingStatus.ACTIVE,
    SandboxTrackingStatus.PAUSED,
    SandboxTrackingStatus.RESUMING,
]


class SandboxManager:
    """Create, execute in, pause, resume and kill per-agent sandboxes.

    Example:
        manager = SandboxManager(provider=MockSandboxProvider(), store=Store.in_memory())

        await manager.create(SandboxConfig(agent_id=agent_id, agent_type=AgentType.SPECIALIST))
        result = await manager.execute(agent_id, "ls -la")
        await manager.pause(agent_id)
        await manager.resume(agent_id)   # same sandbox id
        await manager.kill(agent_id)     # idempotent
    """

    def __init__(
        self,
        provider: SandboxProvider,
        store: Store,
        api_key: str | None = None,
        events: EventEmitter | None = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cost_per_cpu_hour: float = 0.0,
    ):
        """Initialize the manager.

        Args:
            provider: Remote sandbox provider.
            store: Store holding the sandbox_tracking collection.
            api_key: Provider API key passed on create/connect.
            events: Optional event channel for ``sandbox:event`` notifications.
            default_timeout_ms: Session timeout when the config gives none.
            cost_per_cpu_hour: Rate used for the tracked cost estimate.
        """
        self._provider = provider
        self._store = store
        self._api_key = api_key
        self._events = events
        self._default_timeout_ms = default_timeout_ms
        self._cost_per_cpu_hour = cost_per_cpu_hour
        self._sandboxes: dict[str, SandboxInstance] = {}
        self._log = StructuredLogger("sandbox")

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _sync(
        self,
        instance: SandboxInstance,
        status: SandboxTrackingStatus,
        **lifecycle: datetime,
    ) -> SandboxTracking:
        """Upsert the tracking record for an instance.

        Lifecycle timestamps already recorded are kept, so the record
        accumulates the full pause/resume/kill history.
        """
        existing = await self._store.sandbox_tracking.find_one({"sandboxId": instance.sandbox_id})
        now = datetime.now()

        history: dict[str, Any] = {"paused_at": None, "resumed_at": None, "killed_at": None}
        if existing is not None:
            history = {
                "paused_at": existing.lifecycle.paused_at,
                "resumed_at": existing.lifecycle.resumed_at,
                "killed_at": existing.lifecycle.killed_at,
            }
        history.update(lifecycle)

        runtime_seconds = max(0, int((now - instance.created_at).total_seconds()))
        estimated_cost = (
            runtime_seconds / 3600 * instance.resources.cpu_count * self._cost_per_cpu_hour
        )

        record = SandboxTracking(
            sandbox_id=instance.sandbox_id,
            agent_id=instance.agent_id,
            task_id=existing.task_id if existing else None,
            status=status,
            metadata=SandboxMetadata(
                agent_type=instance.agent_type,
                specialization=instance.specialization,
            ),
            lifecycle=SandboxLifecycle(
                created_at=instance.created_at,
                last_heartbeat=now,
                **history,
            ),
            resources=instance.resources,
            costs=SandboxCosts(
                estimated_cost=round(estimated_cost, 6),
                runtime_seconds=runtime_seconds,
            ),
        )
        await self._store.sandbox_tracking.upsert({"sandboxId": instance.sandbox_id}, record)
        return record

    def _emit(self, instance: SandboxInstance, event: str) -> None:
        if self._events:
            self._events.emit(
                EventType.SANDBOX_EVENT,
                sandboxId=instance.sandbox_id,
                agentId=instance.agent_id,
                event=event,
            )

    def _require(self, agent_id: str) -> SandboxInstance:
        instance = self._sandboxes.get(agent_id)
        if instance is None:
            raise SandboxNotFoundError(agent_id)
        return instance

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create(self, config: SandboxConfig) -> SandboxInstance:
        """Provision a sandbox for an agent.

        Raises:
            SandboxCreationError: If the agent already has a live sandbox,
                or the provider/store call fails. The in-memory map is
                left untouched.
        """
        existing = self._sandboxes.get(config.agent_id)
        if existing is not None:
            raise SandboxCreationError(
                f"Agent {config.agent_id} already has a live sandbox {existing.sandbox_id}"
            )

        timeout_ms = config.timeout_ms or self._default_timeout_ms
        resources = SandboxResources(
            cpu_count=config.cpu_count or 2,
            memory_mb=config.memory_mb or 512,
            timeout_ms=timeout_ms,
        )
        specialization = config.specialization or Specialization.GENERAL

        try:
            session = await self._provider.create(
                api_key=self._api_key,
                timeout_ms=timeout_ms,
                metadata={
                    "agentId": config.agent_id,
                    "agentType": config.agent_type.value,
                    "specialization": specialization.value,
                },
            )
        except Exception as e:
            raise SandboxCreationError(
                f"Failed to create sandbox for agent {config.agent_id}: {e}"
            ) from e

        now = datetime.now()
        instance = SandboxInstance(
            sandbox_id=session.sandbox_id,
            agent_id=config.agent_id,
            session=session,
            status=SandboxStatus.ACTIVE,
            agent_type=config.agent_type,
            specialization=config.specialization,
            resources=resources,
            created_at=now,
            last_heartbeat=now,
        )

        try:
            await self._sync(instance, SandboxTrackingStatus.ACTIVE)
        except Exception as e:
            # Do not leak a remote session nobody tracks
            try:
                await session.kill()
            except Exception:
                self._log.warning("Cleanup kill failed", sandbox=instance.sandbox_id)
            raise SandboxCreationError(
                f"Failed to create sandbox for agent {config.agent_id}: {e}"
            ) from e

        self._sandboxes[config.agent_id] = instance
        self._log.info(
            "Created sandbox", agent=short_id(config.agent_id), sandbox=instance.sandbox_id
        )
        self._emit(instance, "created")
        return instance

    async def execute(
        self,
        agent_id: str,
        command: str,
        options: CommandOptions | None = None,
    ) -> CommandResult:
        """Run a command in the agent's sandbox.

        Output is streamed to ``options.on_stdout``/``on_stderr`` as it
        arrives and also accumulated for the returned result.

        Raises:
            SandboxNotFoundError: If the agent has no live sandbox.
            CommandTimeoutError: If the command exceeded its timeout.
            CommandExecutionError: On any other failure.
        """
        instance = self._require(agent_id)
        options = options or CommandOptions()

        stdout: list[str] = []
        stderr: list[str] = []

        def handle_stdout(data: str) -> None:
            stdout.append(data)
            if options.on_stdout:
                options.on_stdout(data)

        def handle_stderr(data: str) -> None:
            stderr.append(data)
            if options.on_stderr:
                options.on_stderr(data)

        try:
            exit_code = await instance.session.run(
                command,
                cwd=options.cwd,
                env=options.env,
                timeout_ms=options.timeout_ms,
                on_stdout=handle_stdout,
                on_stderr=handle_stderr,
            )
        except SandboxTimeoutError as e:
            raise CommandTimeoutError(instance.sandbox_id, command) from e
        except Exception as e:
            if "timeout" in str(e).lower():
                raise CommandTimeoutError(instance.sandbox_id, command) from e
            raise CommandExecutionError(instance.sandbox_id, command, 1, "".join(stderr)) from e

        instance.last_heartbeat = datetime.now()

        return CommandResult(
            exit_code=exit_code,
            stdout="".join(stdout),
            stderr="".join(stderr),
            error=exit_code != 0,
        )

    async def pause(self, agent_id: str) -> None:
        """Hibernate the agent's sandbox.

        Raises:
            SandboxNotFoundError: If the agent has no live sandbox.
        """
        instance = self._require(agent_id)

        await instance.session.pause()
        instance.status = SandboxStatus.PAUSED
        await self._sync(instance, SandboxTrackingStatus.PAUSED, paused_at=datetime.now())

        self._log.info("Paused sandbox", agent=short_id(agent_id), sandbox=instance.sandbox_id)
        self._emit(instance, "paused")

    async def resume(self, agent_id: str) -> None:
        """Reconnect to the agent's paused sandbox (same sandbox id).

        Raises:
            SandboxNotFoundError: If the agent has no live sandbox.
            SandboxError: If the provider cannot reconnect.
        """
        instance = self._require(agent_id)
        await self._sync(instance, SandboxTrackingStatus.RESUMING)

        try:
            session = await self._provider.connect(instance.sandbox_id, self._api_key)
        except Exception as e:
            previous = (
                SandboxTrackingStatus.PAUSED
                if instance.status == SandboxStatus.PAUSED
                else SandboxTrackingStatus.ACTIVE
            )
            await self._sync(instance, previous)
            raise SandboxError(
                f"Failed to resume sandbox {instance.sandbox_id}: {e}", instance.sandbox_id
            ) from e

        instance.session = session
        instance.status = SandboxStatus.ACTIVE
        instance.last_heartbeat = datetime.now()
        await self._sync(instance, SandboxTrackingStatus.ACTIVE, resumed_at=datetime.now())

        self._log.info("Resumed sandbox", agent=short_id(agent_id), sandbox=instance.sandbox_id)
        self._emit(instance, "resumed")

    async def kill(self, agent_id: str) -> None:
        """Terminate the agent's sandbox. Unknown agent ids are a no-op.

        Provider errors are swallowed: the sandbox may already be gone.
        """
        instance = self._sandboxes.get(agent_id)
        if instance is None:
            return

        try:
            await instance.session.kill()
        except Exception as e:
            self._log.warning("Remote kill failed", sandbox=instance.sandbox_id, error=e)

        instance.status = SandboxStatus.KILLED
        try:
            await self._sync(instance, SandboxTrackingStatus.KILLED, killed_at=datetime.now())
        finally:
            self._sandboxes.pop(agent_id, None)

        self._log.info("Killed sandbox", agent=short_id(agent_id), sandbox=instance.sandbox_id)
        self._emit(instance, "killed")

    async def kill_all(self) -> int:
        """Kill every live sandbox. Returns the number killed."""
        agent_ids = list(self._sandboxes)
        for agent_id in agent_ids:
            await self.kill(agent_id)
        return len(agent_ids)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, agent_id: str) -> SandboxInstance | None:
        return self._sandboxes.get(agent_id)

    def is_running(self, agent_id: str) -> bool:
        instance = self._sandboxes.get(agent_id)
        return instance is not None and instance.status != SandboxStatus.KILLED

    def find_by_sandbox_id(self, sandbox_id: str) -> SandboxInstance | None:
        for instance in self._sandboxes.values():
            if instance.sandbox_id == sandbox_id:
                return instance
        return None

    async def get_tracking(self, sandbox_id: str) -> SandboxTracking | None:
        return await self._store.sandbox_tracking.find_one({"sandboxId": sandbox_id})

    async def list_tracking(self, agent_id: str | None = None) -> list[SandboxTracking]:
        filter = {"agentId": agent_id} if agent_id else {}
        return await self._store.sandbox_tracking.find(filter, sort=[("lifecycle.createdAt", -1)])

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    async def sync_from_store(self) -> list[SandboxTracking]:
        """Find tracked sandboxes that are live in the store but not in memory.

        Returns:
            Orphaned tracking records (e.g. left by a previous process).
        """
        records = await self._store.sandbox_tracking.find(
            {"status": {"$in": _LIVE_TRACKING_STATUSES}},
            sort=[("lifecycle.createdAt", -1)],
        )
        return [r for r in records if r.agent_id not in self._sandboxes]

    async def reattach(self, agent_id: str) -> SandboxInstance:
        """Reconnect to an agent's tracked sandbox after a manager restart.

        Raises:
            SandboxNotFoundError: If no live tracking record exists.
            SandboxError: If the provider cannot reconnect.
        """
        if agent_id in self._sandboxes:
            return self._sandboxes[agent_id]

        record = await self._store.sandbox_tracking.find_one(
            {"agentId": agent_id, "status": {"$in": _LIVE_TRACKING_STATUSES}},
            sort=[("lifecycle.createdAt", -1)],
        )
        if record is None:
            raise SandboxNotFoundError(agent_id)

        try:
            session = await self._provider.connect(record.sandbox_id, self._api_key)
        except Exception as e:
            raise SandboxError(
                f"Failed to reattach sandbox {record.sandbox_id}: {e}", record.sandbox_id
            ) from e

        now = datetime.now()
        instance = SandboxInstance(
            sandbox_id=record.sandbox_id,
            agent_id=agent_id,
            session=session,
            status=SandboxStatus.ACTIVE,
            agent_type=record.metadata.agent_type,
            specialization=record.metadata.specialization,
            resources=record.resources,
            created_at=record.lifecycle.created_at,
            last_heartbeat=now,
        )

        lifecycle = {"resumed_at": now} if record.status != SandboxTrackingStatus.ACTIVE else {}
        await self._sync(instance, SandboxTrackingStatus.ACTIVE, **lifecycle)
        self._sandboxes[agent_id] = instance

        self._log.info("Reattached sandbox", agent=short_id(agent_id), sandbox=record.sandbox_id)
        self._emit(instance, "resumed")
        return instance

    # Defined last: the method name shadows the builtin inside the class body
    def list(self) -> list[SandboxInstance]:
        return [*self._sandboxes.values()]
