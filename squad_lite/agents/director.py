"""Director agent: decomposes a goal, delegates to specialists and aggregates.

Flow of :meth:`Director.orchestrate`::

    decompose -> spawn + assign -> specialists run -> wait -> aggregate -> checkpoint
"""

import asyncio
import json
import logging
import re

from pydantic import TypeAdapter, ValidationError

from ..coordination import aggregate_results, build_context_packet
from ..exceptions import TaskError
from ..types import (
    Agent,
    AgentLifecycle,
    AgentType,
    CheckpointSummary,
    MessageType,
    ResumePointer,
    RunConfig,
    SandboxConfig,
    SandboxStatus,
    Specialization,
    Task,
    TaskAssignment,
    TaskStatus,
    short_id,
)
from .base import Squad
from .specialist import Specialist

logger = logging.getLogger(__name__)

DECOMPOSE_PROMPT = """Analyze this task and break it down into 2-3 subtasks that can be assigned to specialist agents.

Task: {task}

For each subtask, provide:
1. A clear title
2. A detailed description of what needs to be done

Format your response as JSON array:
[
  {{"title": "Subtask 1 Title", "description": "Detailed description..."}},
  {{"title": "Subtask 2 Title", "description": "Detailed description..."}}
]

Only output the JSON array, nothing else."""

_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_ASSIGNMENTS = TypeAdapter(list[TaskAssignment])

_KEYWORDS: list[tuple[tuple[str, ...], Specialization]] = [
    (("research", "find", "discover"), Specialization.RESEARCHER),
    (("write", "document", "draft"), Specialization.WRITER),
    (("analyze", "review", "evaluate"), Specialization.ANALYST),
]


def determine_specialization(title: str) -> Specialization:
    """Pick a specialization from keywords in a subtask title."""
    lower = title.lower()
    for keywords, specialization in _KEYWORDS:
        if any(k in lower for k in keywords):
            return specialization
    return Specialization.GENERAL


def parse_subtasks(content: str, task: str) -> list[TaskAssignment]:
    """Parse a decomposition reply, falling back to a single catch-all subtask."""
    text = content.strip()
    fenced = _FENCED.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        subtasks = _ASSIGNMENTS.validate_python(json.loads(text))
    except (ValueError, ValidationError) as e:
        logger.warning("Failed to parse subtasks: %s", e)
        subtasks = []

    if not subtasks:
        return [TaskAssignment(title="Complete task", description=task)]
    return subtasks


class Director:
    """The orchestrating agent of a squad.

    Example:
        director = await Director.create(squad)
        report = await director.orchestrate("Research and summarize X")
    """

    def __init__(self, squad: Squad, agent: Agent, resume_context: str | None = None):
        self.squad = squad
        self.agent = agent
        self.resume_context = resume_context
        self._workers: list[asyncio.Task] = []

    @property
    def agent_id(self) -> str:
        return self.agent.agent_id

    @classmethod
    async def create(cls, squad: Squad) -> "Director":
        context = await squad.registry.initialize_agent(AgentType.DIRECTOR)
        logger.info("Director created (%s)", short_id(context.agent.agent_id))
        return cls(squad, context.agent, context.resume_context)

    # -------------------------------------------------------------------------
    # Specialists
    # -------------------------------------------------------------------------

    async def spawn_specialist(self, specialization: Specialization) -> Specialist:
        """Register a specialist under this director, with a sandbox when one is available."""
        specialist = await Specialist.create(self.squad, specialization, self.agent_id)

        if self.squad.sandboxes is not None:
            instance = await self.squad.sandboxes.create(
                SandboxConfig(
                    agent_id=specialist.agent_id,
                    agent_type=AgentType.SPECIALIST,
                    specialization=specialization,
                )
            )
            await self.squad.registry.attach_sandbox(
                specialist.agent_id, instance.sandbox_id, SandboxStatus.ACTIVE
            )
            await specialist.refresh()

        logger.info(
            "Spawned %s specialist (%s)",
            Specialization(specialization).value,
            short_id(specialist.agent_id),
        )
        return specialist

    async def get_specialists(self) -> list[Agent]:
        return await self.squad.registry.get_specialists(self.agent_id)

    async def assign_task_to_specialist(
        self,
        specialist_id: str,
        assignment: TaskAssignment,
        parent_task_id: str | None = None,
    ) -> Task:
        """Create a task, assign it and notify the specialist on the task's thread."""
        task = await self.squad.tasks.create_task(
            assignment.title, assignment.description, parent_task_id=parent_task_id
        )
        task = await self.squad.tasks.assign_task(task.task_id, specialist_id)

        await self.squad.bus.send_message(
            self.agent_id,
            specialist_id,
            f"Task assigned: {assignment.title}\n\n{assignment.description}",
            MessageType.TASK,
            thread_id=task.task_id,
        )
        logger.info('Assigned task "%s" to %s', assignment.title, short_id(specialist_id))
        return task

    async def decompose_task(self, task: str) -> list[TaskAssignment]:
        result = await self.squad.runner.run(
            RunConfig(
                agent_id=self.agent_id,
                agent_type=AgentType.DIRECTOR,
                task=DECOMPOSE_PROMPT.format(task=task),
            )
        )
        return parse_subtasks(result.content, task)

    determine_specialization = staticmethod(determine_specialization)

    async def wait_for_specialists(self, specialist_ids: list[str], timeout: float | None = None) -> list[Task]:
        return await self.squad.tasks.wait_for_specialists(
            specialist_ids,
            timeout=timeout if timeout is not None else self.squad.specialist_timeout,
            poll_interval=self.squad.poll_interval,
        )

    def aggregate_results(self, tasks: list[Task]) -> str:
        return aggregate_results(tasks)

    @property
    def pending_workers(self) -> int:
        return sum(1 for w in self._workers if not w.done())

    async def wait_for_workers(self) -> None:
        """Await specialist work loops that outlived an orchestration deadline."""
        workers, self._workers = self._workers, []
        await asyncio.gather(*workers)

    async def cancel_workers(self) -> None:
        """Stop late specialist work loops. Their open tasks are marked failed."""
        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def run(self, task: str) -> str:
        """Answer a task with a single director completion."""
        await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.WORKING)

        packet = await build_context_packet(
            self.squad.store,
            self.agent_id,
            task,
            include_checkpoint=bool(self.resume_context),
        )
        logger.info("Starting task: %s...", task[:50])

        result = await self.squad.runner.run(
            RunConfig(
                agent_id=self.agent_id,
                agent_type=AgentType.DIRECTOR,
                task=task,
                resume_context=packet.resume_context,
            )
        )

        await self.squad.checkpoints.create_checkpoint(
            self.agent_id,
            summary=CheckpointSummary(
                goal=task, completed=["Task analysis", "Initial response generated"]
            ),
            resume_pointer=ResumePointer(next_action="Review results", phase="complete"),
            tokens_used=result.usage.total,
        )
        await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.COMPLETED)
        return result.content

    async def orchestrate(
        self,
        task: str,
        timeout: float | None = None,
        run_specialists: bool = True,
    ) -> str:
        """Decompose ``task``, fan it out to specialists and return the aggregate.

        Args:
            task: The high-level goal.
            timeout: Seconds to wait for specialists; defaults to the squad's
                ``specialist_timeout``. On expiry the partial aggregate is used
                and unfinished workers keep running; see
                :meth:`wait_for_workers` and :meth:`cancel_workers`.
            run_specialists: Start each specialist's work loop here. Pass
                False when specialists are driven elsewhere.
        """
        logger.info("Starting orchestration for: %s...", task[:50])

        root = await self.squad.tasks.create_task(task[:100], task)
        await self.squad.tasks.assign_task(root.task_id, self.agent_id)
        await self.squad.tasks.update_task_status(root.task_id, TaskStatus.IN_PROGRESS)
        await self.squad.registry.update_agent_status(
            self.agent_id, AgentLifecycle.WORKING, root.task_id
        )

        try:
            subtasks = await self.decompose_task(task)
            logger.info("Decomposed into %d subtasks", len(subtasks))

            specialists: list[Specialist] = []
            for subtask in subtasks:
                specialist = await self.spawn_specialist(determine_specialization(subtask.title))
                specialists.append(specialist)
                await self.assign_task_to_specialist(
                    specialist.agent_id, subtask, parent_task_id=root.task_id
                )

            workers = [asyncio.create_task(s.run()) for s in specialists] if run_specialists else []
            self._workers.extend(workers)

            results = await self.wait_for_specialists(
                [s.agent_id for s in specialists], timeout=timeout
            )
            if all(t.status.is_terminal for t in results):
                # Let workers finish their checkpoints before moving on
                await asyncio.gather(*workers)
            else:
                running = sum(1 for w in workers if not w.done())
                logger.warning(
                    "Aggregating partial results; %d specialist workers still running", running
                )
            self._workers = [w for w in self._workers if not w.done()]

            aggregated = aggregate_results(results)
            if aggregated:
                await self.squad.tasks.complete_task(root.task_id, aggregated)
            else:
                await self.squad.tasks.fail_task(root.task_id, "No specialist task completed")

            done = [t.title for t in results if t.status == TaskStatus.COMPLETED]
            open_ = [t.title for t in results if t.status != TaskStatus.COMPLETED]
            await self.squad.checkpoints.create_checkpoint(
                self.agent_id,
                summary=CheckpointSummary(
                    goal=task,
                    completed=done,
                    pending=open_,
                    decisions=[f"Spawned {len(specialists)} specialists"],
                ),
                resume_pointer=ResumePointer(next_action="Report final results", phase="aggregation"),
            )
        except Exception as e:
            try:
                await self.squad.tasks.fail_task(root.task_id, str(e))
            except TaskError as te:
                logger.warning("Could not mark root task %s failed: %s", short_id(root.task_id), te)
            await self.squad.registry.update_agent_status(
                self.agent_id, AgentLifecycle.ERROR, root.task_id
            )
            raise

        await self.squad.registry.update_agent_status(self.agent_id, AgentLifecycle.COMPLETED)
        logger.info("Orchestration complete")
        return aggregated
