"""Specialist agent: executes assigned tasks and reports back to its director."""

import asyncio
import logging
import time

from ..events import EventType
from ..exceptions import SandboxNotFoundError, TaskError, ValidationFailure
from ..types import (
    Agent,
    AgentLifecycle,
    AgentType,
    CheckpointSummary,
    CommandOptions,
    CommandResult,
    MessageType,
    ResumePointer,
    RunConfig,
    Specialization,
    Task,
    TaskStatus,
    short_id,
)
from .base import Squad

logger = logging.getLogger(__name__)

SPECIALIZATION_PROMPTS: dict[Specialization, str] = {
    Specialization.RESEARCHER: (
        "As a Research Specialist, focus on:\n"
        "- Finding accurate and relevant information\n"
        "- Citing sources where applicable\n"
        "- Providing comprehensive coverage of the topic"
    ),
    Specialization.WRITER: (
        "As a Writing Specialist, focus on:\n"
        "- Clear and engaging prose\n"
        "- Logical structure and flow\n"
        "- Appropriate tone for the context"
    ),
    Specialization.ANALYST: (
        "As an Analysis Specialist, focus on:\n"
        "- Data-driven insights\n"
        "- Identifying patterns and trends\n"
        "- Providing actionable recommendations"
    ),
    Specialization.GENERAL: "Complete this task to the best of your ability.",
}


def build_task_prompt(task: Task, specialization: Specialization) -> str:
    base_prompt = (
        f"## Task: {task.title}\n\n"
        f"{task.description}\n\n"
        "Please complete this task thoroughly and provide a detailed response."
    )
    return f"{SPECIALIZATION_PROMPTS[Specialization(specialization)]}\n\n{base_prompt}"


class Specialist:
    """A worker agent under a director.

    Example:
        specialist = await Specialist.create(squad, Specialization.RESEARCHER, director_id)
        await specialist.run()   # executes every assigned task
    """

    def __init__(self, squad: Squad, agent: Agent, resume_context: str | None = None):
        self.squad = squad
        self.agent = agent
        self.resume_context = resume_context
        self._last_tokens = 0

    @property
    def agent_id(self) -> str:
        return self.agent.agent_id

    @property
    def specialization(self) -> Specialization:
        return self.agent.specialization or Specialization.GENERAL

    @property
    def parent_id(self) -> str:
        return self.agent.parent_id

    @classmethod
    async def create(
        cls,
        squad: Squad,
        specialization: Specialization,
        parent_id: str | None,
    ) -> "Specialist":
        """Register a specialist under ``parent_id``.

        Raises:
            ValidationFailure: If no parent id is given.
        """
        if not parent_id:
            raise ValidationFailure("A specialist requires a parent_id")

        context = await squad.registry.initialize_agent(
            AgentType.SPECIALIST, specialization=specialization, parent_id=parent_id
        )
        logger.info(
            "Created %s specialist (%s)",
            Specialization(specialization).value,
            short_id(context.agent.agent_id),
        )
        return cls(squad, context.agent, context.resume_context)

    async def refresh(self) -> Agent:
        """Reload the agent record from the store."""
        self.agent = await self.squad.registry.get_agent(self.agent_id)
        return self.agent

    # -------------------------------------------------------------------------
    # Task execution
    # -------------------------------------------------------------------------

    async def process_task(self, task: Task) -> str:
        """Run the task through the completion runner and return its text."""
        logger.info("Processing task: %s", task.title)

        result = await self.squad.runner.run(
            RunConfig(
                agent_id=self.agent_id,
                agent_type=AgentType.SPECIALIST,
                specialization=self.specialization,
                task=build_task_prompt(task, self.specialization),
                resume_context=self.resume_context,
            ),
            on_message=lambda content: logger.debug("Output: %s...", content[:100]),
        )
        self._last_tokens = result.usage.total
        return result.content

    async def report_result(self, task_id: str, result: str) -> None:
        """Complete the task and send the result to the director."""
        await self.squad.tasks.complete_task(task_id, result)
        await self.squad.bus.send_message(
            self.agent_id,
            self.parent_id,
            result,
            MessageType.RESULT,
            thread_id=task_id,
        )
        logger.info("Reported result to %s", short_id(self.parent_id))

    async def execute_task(self, task: Task) -> str:
        """Claim, process and report one task, then checkpoint.

        On failure or cancellation the task is marked failed, the agent
        moves to error and the exception is re-raised.
        """
        await self.squad.registry.update_agent_status(
            self.agent_id, AgentLifecycle.WORKING, task.task_id
        )
        try:
            await self.squad.tasks.start_task(task.task_id)
        except TaskError:
            await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.IDLE)
            raise

        self._last_tokens = 0
        try:
            result = await self.process_task(task)
            await self.report_result(task.task_id, result)
            await self.squad.checkpoints.create_checkpoint(
                self.agent_id,
                summary=CheckpointSummary(goal=task.title, completed=[task.title]),
                resume_pointer=ResumePointer(next_action="Task completed", phase="complete"),
                tokens_used=self._last_tokens,
            )
            await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.COMPLETED)
            return result
        except asyncio.CancelledError:
            await self._mark_failed(task, "Cancelled before completion")
            raise
        except Exception as e:
            await self._mark_failed(task, str(e))
            raise

    async def _mark_failed(self, task: Task, error: str) -> None:
        try:
            await self.squad.tasks.update_task_status(task.task_id, TaskStatus.FAILED, error)
        except TaskError as e:
            # The task already reached a terminal state
            logger.warning("Could not mark task %s failed: %s", short_id(task.task_id), e)
        await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.ERROR)

    async def run(self) -> list[str]:
        """Execute every assigned task; a failed task is logged and skipped."""
        logger.info("Starting work loop (%s)", short_id(self.agent_id))

        tasks = await self.squad.tasks.get_agent_tasks(self.agent_id, TaskStatus.ASSIGNED)
        if not tasks:
            logger.info("No tasks assigned to %s", short_id(self.agent_id))
            return []

        results = []
        for task in tasks:
            try:
                results.append(await self.execute_task(task))
            except Exception:
                logger.exception("Failed task %s", short_id(task.task_id))

        logger.info("Work loop complete (%s)", short_id(self.agent_id))
        return results

    async def await_tasks(self, timeout: float = 60.0, poll_interval: float | None = None) -> list[str]:
        """Poll the inbox for task messages and execute what arrives until the deadline."""
        poll_interval = poll_interval if poll_interval is not None else self.squad.poll_interval
        deadline = time.monotonic() + timeout
        results: list[str] = []

        while time.monotonic() < deadline:
            messages = await self.squad.bus.check_inbox(self.agent_id)
            task_messages = [m for m in messages if m.type == MessageType.TASK]

            if task_messages:
                await self.squad.bus.mark_messages_as_read([m.message_id for m in task_messages])
                results.extend(await self.run())

            remaining = deadline - time.monotonic()
            if remaining > 0:
                await asyncio.sleep(min(poll_interval, remaining))

        return results

    # -------------------------------------------------------------------------
    # Sandbox and checkpoints
    # -------------------------------------------------------------------------

    async def execute_command(self, command: str, options: CommandOptions | None = None) -> CommandResult:
        """Run a shell command in this agent's sandbox, streaming output as events."""
        if self.squad.sandboxes is None:
            raise SandboxNotFoundError(self.agent_id)

        options = options or CommandOptions()
        events = self.squad.events

        def forward(stream: str, callback):
            def handler(data: str) -> None:
                events.emit(EventType.AGENT_OUTPUT, agentId=self.agent_id, stream=stream, data=data)
                if callback:
                    callback(data)

            return handler

        result = await self.squad.sandboxes.execute(
            self.agent_id,
            command,
            CommandOptions(
                cwd=options.cwd,
                env=options.env,
                timeout_ms=options.timeout_ms,
                on_stdout=forward("stdout", options.on_stdout),
                on_stderr=forward("stderr", options.on_stderr),
            ),
        )
        await self.squad.registry.heartbeat(self.agent_id)
        return result

    async def checkpoint_progress(
        self,
        goal: str,
        next_action: str,
        phase: str,
        completed: list[str] | None = None,
        pending: list[str] | None = None,
        decisions: list[str] | None = None,
        current_context: str | None = None,
        tokens_used: int = 0,
    ):
        """Save mid-task progress so a restarted agent can pick up from here."""
        return await self.squad.checkpoints.create_checkpoint(
            self.agent_id,
            summary=CheckpointSummary(
                goal=goal,
                completed=completed or [],
                pending=pending or [],
                decisions=decisions or [],
            ),
            resume_pointer=ResumePointer(
                next_action=next_action, phase=phase, current_context=current_context
            ),
            tokens_used=tokens_used,
        )
