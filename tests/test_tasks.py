"""Tests for the task coordination engine."""

import asyncio
from datetime import datetime, timedelta

import pytest

from squad_lite.coordination import TaskBoard, aggregate_results, is_valid_transition
from squad_lite.events import EventEmitter, EventType
from squad_lite.exceptions import (
    InvalidTaskTransitionError,
    TaskConflictError,
    TaskNotFoundError,
)
from squad_lite.store import Store
from squad_lite.types import Task, TaskStatus


def make_board(**kwargs):
    events = EventEmitter()
    store = Store.in_memory()
    return TaskBoard(store, events, **kwargs), store, events


class TestLifecycle:
    """Tests for creating, assigning and finishing tasks."""

    @pytest.mark.asyncio
    async def test_create_is_pending_and_unassigned(self):
        board, _, events = make_board()

        task = await board.create_task("Research", "Find things", parent_task_id="root")

        assert task.status == TaskStatus.PENDING
        assert task.assigned_to is None
        assert task.result is None
        assert task.parent_task_id == "root"
        assert events.history(EventType.TASK_CREATED)[-1].data["taskId"] == task.task_id

    @pytest.mark.asyncio
    async def test_assign_complete(self):
        board, _, events = make_board()
        task = await board.create_task("T", "D")

        assigned = await board.assign_task(task.task_id, "s1")
        assert assigned.status == TaskStatus.ASSIGNED
        assert assigned.assigned_to == "s1"
        assert assigned.updated_at >= task.updated_at

        await board.start_task(task.task_id)
        done = await board.complete_task(task.task_id, "the result")

        assert done.status == TaskStatus.COMPLETED
        assert done.result == "the result"
        statuses = [e.data["status"] for e in events.history(EventType.TASK_STATUS)]
        assert statuses == ["assigned", "in_progress", "completed"]

    @pytest.mark.asyncio
    async def test_fail_prefixes_error(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")

        failed = await board.fail_task(task.task_id, "boom")

        assert failed.status == TaskStatus.FAILED
        assert failed.result == "Error: boom"

    @pytest.mark.asyncio
    async def test_status_without_result_keeps_result_empty(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")

        updated = await board.update_task_status(task.task_id, TaskStatus.IN_PROGRESS)

        assert updated.result is None

    @pytest.mark.asyncio
    async def test_unknown_task(self):
        board, _, _ = make_board()

        assert await board.get_task("missing") is None
        with pytest.raises(TaskNotFoundError):
            await board.assign_task("missing", "s1")


class TestTransitions:
    """Tests for forward-only status transitions."""

    def test_rank_rules(self):
        assert is_valid_transition(TaskStatus.PENDING, TaskStatus.COMPLETED)
        assert is_valid_transition(TaskStatus.ASSIGNED, TaskStatus.ASSIGNED)
        assert not is_valid_transition(TaskStatus.IN_PROGRESS, TaskStatus.PENDING)
        assert not is_valid_transition(TaskStatus.COMPLETED, TaskStatus.FAILED)
        assert not is_valid_transition(TaskStatus.FAILED, TaskStatus.FAILED)

    @pytest.mark.asyncio
    async def test_terminal_is_final(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")
        await board.complete_task(task.task_id, "done")

        with pytest.raises(InvalidTaskTransitionError) as exc_info:
            await board.fail_task(task.task_id, "late failure")

        assert exc_info.value.current == "completed"
        assert (await board.get_task(task.task_id)).result == "done"

    @pytest.mark.asyncio
    async def test_no_backwards_moves(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")
        await board.update_task_status(task.task_id, TaskStatus.IN_PROGRESS)

        with pytest.raises(InvalidTaskTransitionError):
            await board.assign_task(task.task_id, "s2")

    @pytest.mark.asyncio
    async def test_requeue_is_the_only_backward_edge(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")
        await board.assign_task(task.task_id, "s1")
        await board.start_task(task.task_id)

        requeued = await board.requeue_task(task.task_id)

        assert requeued.status == TaskStatus.ASSIGNED
        assert requeued.assigned_to == "s1"
        with pytest.raises(InvalidTaskTransitionError):
            await board.requeue_task(task.task_id)

    @pytest.mark.asyncio
    async def test_start_requires_assigned(self):
        board, _, _ = make_board()
        task = await board.create_task("T", "D")

        with pytest.raises(InvalidTaskTransitionError):
            await board.start_task(task.task_id)

    @pytest.mark.asyncio
    async def test_lost_race_raises_conflict(self):
        board, store, _ = make_board()
        task = await board.create_task("T", "D")
        await board.assign_task(task.task_id, "s1")

        original_find_one = store.tasks.find_one

        async def stale_then_moved(filter=None, sort=None):
            snapshot = await original_find_one(filter, sort)
            # Another writer claims the task between our read and write
            await store.tasks.update_one({"taskId": task.task_id}, {"status": "in_progress"})
            store.tasks.find_one = original_find_one
            return snapshot

        store.tasks.find_one = stale_then_moved

        with pytest.raises(TaskConflictError):
            await board.start_task(task.task_id)

    @pytest.mark.asyncio
    async def test_permissive_mode(self):
        board, _, _ = make_board(enforce_transitions=False)
        task = await board.create_task("T", "D")
        await board.complete_task(task.task_id, "done")

        overwritten = await board.update_task_status(task.task_id, TaskStatus.FAILED, "later")

        assert overwritten.status == TaskStatus.FAILED
        assert overwritten.result == "later"


class TestQueries:
    """Tests for task listings."""

    @pytest.mark.asyncio
    async def test_ordering(self):
        board, store, _ = make_board()
        base = datetime.now()
        for i in range(3):
            await store.tasks.insert(
                Task(
                    title=f"T{i}",
                    description="",
                    parent_task_id="root",
                    assigned_to="s1" if i < 2 else "s2",
                    status=TaskStatus.ASSIGNED,
                    created_at=base + timedelta(seconds=i),
                )
            )

        assert [t.title for t in await board.get_subtasks("root")] == ["T0", "T1", "T2"]
        assert [t.title for t in await board.get_agent_tasks("s1")] == ["T1", "T0"]
        assert await board.get_agent_tasks("s1", TaskStatus.COMPLETED) == []
        assert [t.title for t in await board.get_tasks_for_agents(["s1", "s2"])] == ["T2", "T1", "T0"]
        assert len(await board.list_tasks(TaskStatus.ASSIGNED)) == 3


class TestWaitAndAggregate:
    """Tests for waiting on specialists and merging results."""

    @pytest.mark.asyncio
    async def test_wait_returns_when_all_terminal(self):
        board, _, _ = make_board()
        a = await board.create_task("A", "")
        b = await board.create_task("B", "")
        await board.assign_task(a.task_id, "s1")
        await board.assign_task(b.task_id, "s2")

        async def finish():
            await asyncio.sleep(0.05)
            await board.complete_task(a.task_id, "ra")
            await board.fail_task(b.task_id, "rb")

        worker = asyncio.create_task(finish())
        tasks = await board.wait_for_specialists(["s1", "s2"], timeout=2.0, poll_interval=0.01)
        await worker

        assert {t.status for t in tasks} == {TaskStatus.COMPLETED, TaskStatus.FAILED}

    @pytest.mark.asyncio
    async def test_wait_times_out_with_partial_snapshot(self):
        board, _, _ = make_board()
        task = await board.create_task("A", "")
        await board.assign_task(task.task_id, "s1")

        tasks = await board.wait_for_specialists(["s1"], timeout=0.05, poll_interval=0.01)

        assert [t.status for t in tasks] == [TaskStatus.ASSIGNED]

    @pytest.mark.asyncio
    async def test_wait_with_no_tasks_times_out(self):
        board, _, _ = make_board()
        assert await board.wait_for_specialists(["s1"], timeout=0.05, poll_interval=0.01) == []

    def test_aggregate(self):
        tasks = [
            Task(title="Research", description="", status=TaskStatus.COMPLETED, result="R"),
            Task(title="Empty", description="", status=TaskStatus.COMPLETED, result=""),
            Task(title="Broken", description="", status=TaskStatus.FAILED, result="Error: x"),
            Task(title="Write", description="", status=TaskStatus.COMPLETED, result="W"),
        ]

        assert aggregate_results(tasks) == "## Research\n\nR\n\n---\n\n## Write\n\nW"
        assert aggregate_results(tasks[1:3]) == ""
