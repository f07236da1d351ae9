"""Request/response operations over a squad.

Each operation returns a JSON-ready dict on success, or an error body
``{"error", "message", "statusCode"}``: 404 ``not_found`` for unknown ids and
500 with an operation-specific tag for anything else. A web transport maps
these one-to-one onto routes; push notifications come from
``squad.events``.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .agents import Director, Specialist, Squad
from .exceptions import NotFoundError, SandboxError, SandboxKilledError
from .events import EventType
from .types import (
    Agent,
    AgentLifecycle,
    AgentType,
    CheckpointSummary,
    Record,
    ResumePointer,
    SandboxConfig,
    SandboxStatus,
    SandboxTracking,
    SandboxTrackingStatus,
    Specialization,
    TaskStatus,
    short_id,
)

logger = logging.getLogger(__name__)

_LIVE_TRACKING = (
    SandboxTrackingStatus.ACTIVE,
    SandboxTrackingStatus.PAUSED,
    SandboxTrackingStatus.RESUMING,
)


class ErrorResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    error: str
    message: str
    status_code: int


def error_response(exc: Exception, tag: str) -> dict[str, Any]:
    """Map an exception to an error body."""
    if isinstance(exc, NotFoundError):
        body = ErrorResponse(error="not_found", message=str(exc), status_code=404)
    else:
        body = ErrorResponse(error=tag, message=str(exc), status_code=500)
    return body.model_dump(by_alias=True)


def _view(record: Record) -> dict[str, Any]:
    return record.model_dump(mode="json", by_alias=True)


class SandboxRecordNotFoundError(NotFoundError):
    def __init__(self, sandbox_id: str):
        self.sandbox_id = sandbox_id
        super().__init__(f"Sandbox {sandbox_id} not found")


class SquadService:
    """Async operations for agents, tasks, messages and sandboxes.

    Example:
        service = SquadService(Squad.from_config())
        created = await service.create_agent()
        await service.submit_task(created["agentId"], "Summarize X")
    """

    def __init__(self, squad: Squad):
        self.squad = squad

    # =========================================================================
    # AGENTS
    # =========================================================================

    async def create_agent(
        self,
        type: AgentType = AgentType.DIRECTOR,
        specialization: Specialization | None = None,
        parent_id: str | None = None,
    ) -> dict[str, Any]:
        try:
            if AgentType(type) == AgentType.DIRECTOR:
                agent = (await Director.create(self.squad)).agent
            else:
                if parent_id:
                    parent = await self.squad.registry.get_agent(parent_id)
                    director = Director(self.squad, parent)
                    specialist = await director.spawn_specialist(
                        specialization or Specialization.GENERAL
                    )
                else:
                    specialist = await Specialist.create(
                        self.squad, specialization or Specialization.GENERAL, parent_id
                    )
                agent = specialist.agent
        except Exception as e:
            return error_response(e, "spawn_failed")
        return _view(agent)

    async def get_agent_status(self, agent_id: str) -> dict[str, Any]:
        try:
            agent = await self.squad.registry.get_agent(agent_id)
        except Exception as e:
            return error_response(e, "status_failed")
        return _view(agent)

    async def list_agents(
        self,
        type: AgentType | None = None,
        status: AgentLifecycle | None = None,
    ) -> dict[str, Any]:
        agents = await self.squad.registry.list_agents(type=type, status=status)
        return {"agents": [_view(a) for a in agents]}

    async def submit_task(self, agent_id: str, task: str) -> dict[str, Any]:
        """Create a task from free text and assign it to an agent."""
        try:
            await self.squad.registry.get_agent(agent_id)
            created = await self.squad.tasks.create_task(task[:100], task)
            assigned = await self.squad.tasks.assign_task(created.task_id, agent_id)
        except Exception as e:
            return error_response(e, "task_failed")
        return {"taskId": assigned.task_id, "status": assigned.status.value, "agentId": agent_id}

    async def kill_agent(self, agent_id: str) -> dict[str, Any]:
        """Checkpoint the agent's current task, kill its sandbox and stop it."""
        try:
            agent = await self.squad.registry.get_agent(agent_id)
            checkpoint_id = await self._checkpoint_interrupted(agent)

            if self.squad.sandboxes is not None and self.squad.sandboxes.is_running(agent_id):
                await self.squad.sandboxes.kill(agent_id)

            await self.squad.registry.update_agent_status(
                agent_id, AgentLifecycle.COMPLETED, agent.task_id
            )
            await self.squad.registry.set_sandbox_status(agent_id, SandboxStatus.KILLED)
        except Exception as e:
            return error_response(e, "kill_failed")

        logger.info("Killed agent %s", short_id(agent_id))
        self.squad.events.emit(EventType.AGENT_KILLED, agentId=agent_id, checkpointId=checkpoint_id)
        return {"agentId": agent_id, "status": "killed", "checkpointId": checkpoint_id}

    async def _checkpoint_interrupted(self, agent: Agent) -> str | None:
        if not agent.task_id:
            return None
        task = await self.squad.tasks.get_task(agent.task_id)
        if task is None or task.status.is_terminal:
            return None

        checkpoint = await self.squad.checkpoints.create_checkpoint(
            agent.agent_id,
            summary=CheckpointSummary(goal=task.title, pending=[task.title]),
            resume_pointer=ResumePointer(
                next_action=f"Resume task: {task.title}",
                phase="interrupted",
                current_context=f"Task {task.task_id} was {task.status.value} when the agent was killed",
            ),
        )
        return checkpoint.checkpoint_id

    async def restart_agent(self, agent_id: str) -> dict[str, Any]:
        """Bring a killed agent back: requeue its task, reprovision its sandbox."""
        try:
            agent = await self.squad.registry.get_agent(agent_id)
            await self.squad.registry.update_agent_status(agent_id, AgentLifecycle.IDLE, agent.task_id)

            if agent.task_id:
                task = await self.squad.tasks.get_task(agent.task_id)
                if task is not None and task.status == TaskStatus.IN_PROGRESS:
                    await self.squad.tasks.requeue_task(task.task_id)

            sandboxes = self.squad.sandboxes
            if agent.sandbox_id and sandboxes is not None and not sandboxes.is_running(agent_id):
                instance = await sandboxes.create(
                    SandboxConfig(
                        agent_id=agent_id,
                        agent_type=agent.type,
                        specialization=agent.specialization,
                    )
                )
                await self.squad.registry.attach_sandbox(
                    agent_id, instance.sandbox_id, SandboxStatus.ACTIVE
                )

            resume_context = await self.squad.checkpoints.get_resume_context(agent_id)
            agent = await self.squad.registry.get_agent(agent_id)
        except Exception as e:
            return error_response(e, "restart_failed")

        logger.info("Restarted agent %s", short_id(agent_id))
        return {**_view(agent), "resumeContext": resume_context}

    # =========================================================================
    # TASKS AND MESSAGES
    # =========================================================================

    async def list_tasks(self, status: TaskStatus | None = None) -> dict[str, Any]:
        tasks = await self.squad.tasks.list_tasks(status)
        return {"tasks": [_view(t) for t in tasks]}

    async def get_task(self, task_id: str) -> dict[str, Any]:
        task = await self.squad.tasks.get_task(task_id)
        if task is None:
            return ErrorResponse(
                error="not_found", message=f"Task {task_id} not found", status_code=404
            ).model_dump(by_alias=True)
        return _view(task)

    async def list_messages(
        self,
        agent_id: str | None = None,
        thread_id: str | None = None,
        limit: int = 50,
    ) -> dict[str, Any]:
        messages = await self.squad.bus.list_messages(agent_id=agent_id, thread_id=thread_id, limit=limit)
        return {"messages": [{**_view(m), "read": m.read_at is not None} for m in messages]}

    # =========================================================================
    # SANDBOXES
    # =========================================================================

    async def list_sandboxes(self) -> dict[str, Any]:
        records = await self.squad.store.sandbox_tracking.find(sort=[("lifecycle.createdAt", -1)])
        return {"sandboxes": [_view(r) for r in records]}

    async def get_sandbox(self, sandbox_id: str) -> dict[str, Any]:
        try:
            record = await self._tracking(sandbox_id)
        except Exception as e:
            return error_response(e, "sandbox_failed")
        return _view(record)

    async def pause_sandbox(self, sandbox_id: str) -> dict[str, Any]:
        try:
            record = await self._attached(sandbox_id)
            await self.squad.sandboxes.pause(record.agent_id)
            await self.squad.registry.set_sandbox_status(record.agent_id, SandboxStatus.PAUSED)
        except Exception as e:
            return error_response(e, "pause_failed")
        return {"sandboxId": sandbox_id, "status": SandboxStatus.PAUSED.value}

    async def resume_sandbox(self, sandbox_id: str) -> dict[str, Any]:
        try:
            record = await self._attached(sandbox_id)
            await self.squad.sandboxes.resume(record.agent_id)
            await self.squad.registry.set_sandbox_status(record.agent_id, SandboxStatus.ACTIVE)
        except Exception as e:
            return error_response(e, "resume_failed")
        return {"sandboxId": sandbox_id, "status": SandboxStatus.ACTIVE.value}

    async def kill_sandbox(self, sandbox_id: str) -> dict[str, Any]:
        try:
            record = await self._tracking(sandbox_id)
            if record.status != SandboxTrackingStatus.KILLED:
                await self._attached(sandbox_id)
                await self.squad.sandboxes.kill(record.agent_id)
            await self.squad.registry.set_sandbox_status(record.agent_id, SandboxStatus.KILLED)
        except Exception as e:
            return error_response(e, "kill_failed")
        return {"sandboxId": sandbox_id, "status": SandboxStatus.KILLED.value}

    async def _tracking(self, sandbox_id: str) -> SandboxTracking:
        record = await self.squad.store.sandbox_tracking.find_one({"sandboxId": sandbox_id})
        if record is None:
            raise SandboxRecordNotFoundError(sandbox_id)
        return record

    async def _attached(self, sandbox_id: str) -> SandboxTracking:
        """Tracking record for a sandbox whose live session this process holds."""
        record = await self._tracking(sandbox_id)
        if record.status == SandboxTrackingStatus.KILLED:
            raise SandboxKilledError(sandbox_id)
        sandboxes = self.squad.sandboxes
        if sandboxes is None:
            raise SandboxError("No sandbox provider configured", sandbox_id)

        instance = sandboxes.get(record.agent_id)
        if instance is None and record.status in _LIVE_TRACKING:
            # Tracked by an earlier process
            await sandboxes.reattach(record.agent_id)
        elif instance is None or instance.sandbox_id != sandbox_id:
            raise SandboxRecordNotFoundError(sandbox_id)
        return record
