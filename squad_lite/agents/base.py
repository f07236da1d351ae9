"""Shared agent plumbing: the registry and the Squad bundle."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..config import SquadConfig
from ..coordination import CheckpointManager, MessageBus, TaskBoard
from ..events import EventEmitter, EventType
from ..exceptions import AgentNotFoundError
from ..gateway import AgentRunner, BaseProvider, ProviderFactory
from ..sandbox import SandboxManager, SandboxProvider, SandboxProviderFactory
from ..store import Store
from ..types import (
    Agent,
    AgentLifecycle,
    AgentType,
    SandboxStatus,
    Specialization,
    short_id,
)
from ..utils.logging import configure_logging

logger = logging.getLogger(__name__)

_LIVE_STATUSES = [AgentLifecycle.IDLE, AgentLifecycle.WORKING, AgentLifecycle.WAITING]


@dataclass
class AgentContext:
    """A freshly registered agent plus any resume briefing."""

    agent: Agent
    resume_context: str | None = None


class AgentRegistry:
    """Registers agents and tracks their lifecycle in the store."""

    def __init__(
        self,
        store: Store,
        checkpoints: CheckpointManager,
        events: EventEmitter | None = None,
    ):
        self._store = store
        self._checkpoints = checkpoints
        self._events = events

    async def register_agent(
        self,
        type: AgentType,
        specialization: Specialization | None = None,
        parent_id: str | None = None,
    ) -> Agent:
        """Insert a new idle agent.

        Raises:
            RecordValidationError: If a specialist has no parent or a
                director has one.
        """
        doc = self._store.agents.validate_document(
            {"type": type, "specialization": specialization, "parentId": parent_id}
        )
        agent = await self._store.agents.insert(Agent.model_validate(doc))

        label = agent.type.value
        if agent.specialization:
            label += f":{agent.specialization.value}"
        logger.info("Registered %s (%s)", label, short_id(agent.agent_id))

        if self._events:
            self._events.emit(
                EventType.AGENT_CREATED,
                agentId=agent.agent_id,
                type=agent.type.value,
                specialization=agent.specialization.value if agent.specialization else None,
                parentId=agent.parent_id,
            )
        return agent

    async def initialize_agent(
        self,
        type: AgentType,
        specialization: Specialization | None = None,
        parent_id: str | None = None,
    ) -> AgentContext:
        """Register an agent and look up a checkpoint to resume from."""
        agent = await self.register_agent(type, specialization, parent_id)
        state = await self._checkpoints.resume_from_checkpoint(agent.agent_id)
        return AgentContext(agent=agent, resume_context=state.resume_context)

    async def _update(self, agent_id: str, fields: dict) -> None:
        if not await self._store.agents.update_one({"agentId": agent_id}, fields):
            raise AgentNotFoundError(agent_id)

    async def update_agent_status(
        self,
        agent_id: str,
        status: AgentLifecycle,
        task_id: str | None = None,
    ) -> None:
        """Set an agent's status. The current task is replaced by ``task_id``."""
        await self._update(
            agent_id,
            {"status": AgentLifecycle(status).value, "taskId": task_id, "lastHeartbeat": datetime.now()},
        )
        logger.debug("Agent %s -> %s", short_id(agent_id), AgentLifecycle(status).value)
        if self._events:
            self._events.emit(
                EventType.AGENT_STATUS,
                agentId=agent_id,
                status=AgentLifecycle(status).value,
                taskId=task_id,
            )

    async def heartbeat(self, agent_id: str) -> None:
        await self._update(agent_id, {"lastHeartbeat": datetime.now()})

    async def attach_sandbox(
        self,
        agent_id: str,
        sandbox_id: str | None,
        sandbox_status: SandboxStatus = SandboxStatus.ACTIVE,
    ) -> None:
        await self._update(
            agent_id,
            {"sandboxId": sandbox_id, "sandboxStatus": SandboxStatus(sandbox_status).value},
        )

    async def set_sandbox_status(self, agent_id: str, sandbox_status: SandboxStatus) -> None:
        await self._update(agent_id, {"sandboxStatus": SandboxStatus(sandbox_status).value})

    async def find_agent(self, agent_id: str) -> Agent | None:
        return await self._store.agents.find_one({"agentId": agent_id})

    async def get_agent(self, agent_id: str) -> Agent:
        agent = await self.find_agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return agent

    async def list_agents(
        self,
        type: AgentType | None = None,
        status: AgentLifecycle | None = None,
    ) -> list[Agent]:
        filter: dict = {}
        if type is not None:
            filter["type"] = type
        if status is not None:
            filter["status"] = status
        return await self._store.agents.find(filter, sort=[("createdAt", 1)])

    async def get_specialists(self, director_id: str) -> list[Agent]:
        return await self._store.agents.find(
            {"parentId": director_id, "type": AgentType.SPECIALIST}, sort=[("createdAt", 1)]
        )

    async def get_peer_agents(self, agent_id: str) -> list[Agent]:
        """Live agents sharing this agent's parent (or, failing that, its task)."""
        agent = await self.find_agent(agent_id)
        if agent is None:
            return []

        filter: dict = {"agentId": {"$ne": agent_id}, "status": {"$in": _LIVE_STATUSES}}
        if agent.parent_id:
            filter["parentId"] = agent.parent_id
        elif agent.task_id:
            filter["taskId"] = agent.task_id
        return await self._store.agents.find(filter)

    async def shutdown_agent(self, agent_id: str) -> None:
        await self.update_agent_status(agent_id, AgentLifecycle.COMPLETED)
        logger.info("Agent %s shutdown complete", short_id(agent_id))


@dataclass
class Squad:
    """The collaborators every agent works against.

    Example:
        squad = Squad.create(Store.in_memory(), AgentRunner(MockProvider()))
        director = await Director.create(squad)
        result = await director.orchestrate("Write a report on X")
    """

    store: Store
    runner: AgentRunner
    events: EventEmitter
    registry: AgentRegistry
    checkpoints: CheckpointManager
    bus: MessageBus
    tasks: TaskBoard
    sandboxes: SandboxManager | None = None
    poll_interval: float = 1.0
    specialist_timeout: float = 60.0
    config: SquadConfig | None = field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        store: Store,
        runner: AgentRunner,
        sandbox_provider: SandboxProvider | None = None,
        events: EventEmitter | None = None,
        sandbox_api_key: str | None = None,
        sandbox_timeout_ms: int = 600_000,
        sandbox_cost_per_cpu_hour: float = 0.0,
        enforce_transitions: bool = True,
        poll_interval: float = 1.0,
        specialist_timeout: float = 60.0,
        config: SquadConfig | None = None,
    ) -> "Squad":
        """Wire up a squad from a store, a runner and an optional sandbox provider."""
        events = events or EventEmitter()
        checkpoints = CheckpointManager(store, events)
        sandboxes = None
        if sandbox_provider is not None:
            sandboxes = SandboxManager(
                sandbox_provider,
                store,
                api_key=sandbox_api_key,
                events=events,
                default_timeout_ms=sandbox_timeout_ms,
                cost_per_cpu_hour=sandbox_cost_per_cpu_hour,
            )
        return cls(
            store=store,
            runner=runner,
            events=events,
            registry=AgentRegistry(store, checkpoints, events),
            checkpoints=checkpoints,
            bus=MessageBus(store, events),
            tasks=TaskBoard(store, events, enforce_transitions=enforce_transitions),
            sandboxes=sandboxes,
            poll_interval=poll_interval,
            specialist_timeout=specialist_timeout,
            config=config,
        )

    @classmethod
    def from_config(
        cls,
        config: SquadConfig | None = None,
        provider: BaseProvider | None = None,
        sandbox_provider: SandboxProvider | None = None,
    ) -> "Squad":
        """Build a squad from configuration (environment by default)."""
        config = config or SquadConfig.from_env()
        configure_logging(config.log_level)

        if provider is None:
            provider = ProviderFactory.create("anthropic", api_key=config.anthropic_api_key)
        if sandbox_provider is None:
            sandbox_provider = SandboxProviderFactory.create(config.sandbox_provider.value)

        runner = AgentRunner(
            provider,
            model=config.model,
            max_tokens=config.max_tokens,
            skills_dir=config.skills_dir,
        )
        return cls.create(
            Store.from_config(config),
            runner,
            sandbox_provider=sandbox_provider,
            sandbox_api_key=config.e2b_api_key,
            sandbox_timeout_ms=config.sandbox_timeout_ms,
            sandbox_cost_per_cpu_hour=config.sandbox_cost_per_cpu_hour,
            poll_interval=config.poll_interval,
            specialist_timeout=config.specialist_timeout,
            config=config,
        )
