"""Task coordination engine for squad-lite.

Tasks move forward through ``pending -> assigned -> in_progress`` and end in
``completed`` or ``failed``. Every status write is a compare-and-swap on the
status that was read, so two writers racing on the same task cannot both
win. The single backward edge, ``in_progress -> assigned``, is reserved for
:meth:`TaskBoard.requeue_task` when a killed agent restarts.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any

from ..events import EventEmitter, EventType
from ..exceptions import InvalidTaskTransitionError, TaskConflictError, TaskNotFoundError
from ..store import Store
from ..types import Task, TaskStatus, short_id

logger = logging.getLogger(__name__)

_RANK = {
    TaskStatus.PENDING: 0,
    TaskStatus.ASSIGNED: 1,
    TaskStatus.IN_PROGRESS: 2,
    TaskStatus.COMPLETED: 3,
    TaskStatus.FAILED: 3,
}


def is_valid_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Forward-only transitions; terminal states are final."""
    if current.is_terminal:
        return False
    return _RANK[requested] >= _RANK[current]


def aggregate_results(tasks: list[Task]) -> str:
    """Join the results of completed tasks into one document."""
    sections = [
        f"## {task.title}\n\n{task.result}"
        for task in tasks
        if task.status == TaskStatus.COMPLETED and task.result
    ]
    return "\n\n---\n\n".join(sections)


class TaskBoard:
    """Creates, assigns and tracks tasks.

    Args:
        store: Persistent store.
        events: Optional event emitter for ``task:*`` notifications.
        enforce_transitions: When False, any status may be written over any
            other and writes are last-writer-wins.
    """

    def __init__(
        self,
        store: Store,
        events: EventEmitter | None = None,
        enforce_transitions: bool = True,
    ):
        self._store = store
        self._events = events
        self.enforce_transitions = enforce_transitions

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_task(
        self,
        title: str,
        description: str,
        parent_task_id: str | None = None,
    ) -> Task:
        now = datetime.now()
        task = Task(
            title=title,
            description=description,
            parent_task_id=parent_task_id,
            created_at=now,
            updated_at=now,
        )
        await self._store.tasks.insert(task)

        logger.info("Task created: %s (%s)", title, short_id(task.task_id))
        if self._events:
            self._events.emit(
                EventType.TASK_CREATED,
                taskId=task.task_id,
                title=title,
                parentTaskId=parent_task_id,
            )
        return task

    async def assign_task(self, task_id: str, agent_id: str) -> Task:
        task = await self._transition(task_id, TaskStatus.ASSIGNED, {"assignedTo": agent_id})
        logger.info("Task %s assigned to %s", short_id(task_id), short_id(agent_id))
        return task

    async def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        result: str | None = None,
    ) -> Task:
        fields: dict[str, Any] = {}
        if result is not None:
            fields["result"] = result
        task = await self._transition(task_id, TaskStatus(status), fields)
        logger.info("Task %s -> %s", short_id(task_id), task.status.value)
        return task

    async def complete_task(self, task_id: str, result: str) -> Task:
        return await self.update_task_status(task_id, TaskStatus.COMPLETED, result)

    async def fail_task(self, task_id: str, error: str) -> Task:
        logger.warning("Task %s failed: %s", short_id(task_id), error)
        return await self.update_task_status(task_id, TaskStatus.FAILED, f"Error: {error}")

    async def start_task(self, task_id: str) -> Task:
        """Claim an assigned task for execution.

        Raises:
            InvalidTaskTransitionError: If the task is not in the assigned state.
            TaskConflictError: If another writer claimed it first.
        """
        return await self._transition(
            task_id, TaskStatus.IN_PROGRESS, {}, expected=TaskStatus.ASSIGNED
        )

    async def requeue_task(self, task_id: str) -> Task:
        """Hand an interrupted task back to its assignee."""
        task = await self._transition(
            task_id, TaskStatus.ASSIGNED, {}, expected=TaskStatus.IN_PROGRESS
        )
        logger.info("Task %s requeued", short_id(task_id))
        return task

    async def _transition(
        self,
        task_id: str,
        status: TaskStatus,
        fields: dict[str, Any],
        expected: TaskStatus | None = None,
    ) -> Task:
        current = await self.get_task(task_id)
        if current is None:
            raise TaskNotFoundError(task_id)

        filter: dict[str, Any] = {"taskId": task_id}
        if self.enforce_transitions:
            if expected is not None:
                allowed = current.status == expected
            else:
                allowed = is_valid_transition(current.status, status)
            if not allowed:
                raise InvalidTaskTransitionError(task_id, current.status.value, status.value)
            filter["status"] = current.status.value

        updated = await self._store.tasks.update_one(
            filter,
            {**fields, "status": status.value, "updatedAt": datetime.now()},
        )
        if not updated:
            raise TaskConflictError(task_id, current.status.value)

        task = await self.get_task(task_id)
        if self._events:
            self._events.emit(
                EventType.TASK_STATUS,
                taskId=task_id,
                status=task.status.value,
                assignedTo=task.assigned_to,
            )
        return task

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_task(self, task_id: str) -> Task | None:
        return await self._store.tasks.find_one({"taskId": task_id})

    async def get_agent_tasks(self, agent_id: str, status: TaskStatus | None = None) -> list[Task]:
        """Tasks assigned to an agent, newest first."""
        filter: dict[str, Any] = {"assignedTo": agent_id}
        if status is not None:
            filter["status"] = status
        return await self._store.tasks.find(filter, sort=[("createdAt", -1)])

    async def get_subtasks(self, parent_task_id: str) -> list[Task]:
        return await self._store.tasks.find({"parentTaskId": parent_task_id}, sort=[("createdAt", 1)])

    async def get_tasks_for_agents(self, agent_ids: list[str]) -> list[Task]:
        return await self._store.tasks.find(
            {"assignedTo": {"$in": list(agent_ids)}}, sort=[("createdAt", -1)]
        )

    async def list_tasks(self, status: TaskStatus | None = None) -> list[Task]:
        filter = {"status": status} if status is not None else None
        return await self._store.tasks.find(filter, sort=[("createdAt", -1)])

    # -------------------------------------------------------------------------
    # Waiting
    # -------------------------------------------------------------------------

    async def wait_for_specialists(
        self,
        specialist_ids: list[str],
        timeout: float = 60.0,
        poll_interval: float = 1.0,
    ) -> list[Task]:
        """Poll until every specialist task is terminal or the deadline passes.

        Returns the latest snapshot either way; on timeout some tasks may
        still be open.
        """
        deadline = time.monotonic() + timeout
        while True:
            tasks = await self.get_tasks_for_agents(specialist_ids)
            if tasks and all(t.status.is_terminal for t in tasks):
                return tasks

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                open_count = sum(1 for t in tasks if not t.status.is_terminal)
                logger.warning(
                    "Timed out waiting for %d specialists (%d tasks still open)",
                    len(specialist_ids),
                    open_count,
                )
                return tasks
            await asyncio.sleep(min(poll_interval, remaining))

    def aggregate_results(self, tasks: list[Task]) -> str:
        return aggregate_results(tasks)
