"""Checkpoint and resume protocol for squad-lite.

Agents will be killed mid-task. Restarting from scratch is unacceptable.
A checkpoint captures an agent's goal, completed/pending work, key
decisions and a resume pointer; resuming reads the most recent one and
renders it as a briefing injected into the agent's next instruction.

Checkpoints are append-only. The latest wins, ordered by creation time and
then by a per-agent sequence number.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime

from ..events import EventEmitter, EventType
from ..store import Store
from ..types import Checkpoint, CheckpointSummary, ResumePointer, short_id

logger = logging.getLogger(__name__)

_LATEST_FIRST = [("createdAt", -1), ("sequence", -1)]


@dataclass
class ResumeState:
    """Result of attempting to resume an agent."""

    checkpoint: Checkpoint | None
    resume_context: str | None

    @property
    def is_resumed(self) -> bool:
        return self.checkpoint is not None


def build_resume_context(checkpoint: Checkpoint) -> str:
    """Render a checkpoint as a textual briefing."""
    summary = checkpoint.summary
    pointer = checkpoint.resume_pointer

    sections: list[str] = ["## Resuming from Checkpoint", "", f"**Goal:** {summary.goal}", ""]

    for heading, items in (
        ("Completed", summary.completed),
        ("Pending", summary.pending),
        ("Key Decisions", summary.decisions),
    ):
        if items:
            sections.append(f"**{heading}:**")
            sections.extend(f"- {item}" for item in items)
            sections.append("")

    sections.append(f"**Next Action:** {pointer.next_action}")
    sections.append(f"**Phase:** {pointer.phase}")

    if pointer.current_context:
        sections.append(f"**Context:** {pointer.current_context}")

    return "\n".join(sections)


class CheckpointManager:
    """Creates and reads agent checkpoints.

    Example:
        manager = CheckpointManager(store)

        await manager.create_checkpoint(
            agent_id,
            summary=CheckpointSummary(goal="Research X", completed=["Outline"]),
            resume_pointer=ResumePointer(next_action="Draft section 2", phase="drafting"),
        )

        # After a restart
        context = await manager.get_resume_context(agent_id)
    """

    def __init__(self, store: Store, events: EventEmitter | None = None):
        self._store = store
        self._events = events
        self._lock = asyncio.Lock()

    async def create_checkpoint(
        self,
        agent_id: str,
        summary: CheckpointSummary,
        resume_pointer: ResumePointer,
        tokens_used: int = 0,
    ) -> Checkpoint:
        """Append a new immutable checkpoint for an agent."""
        async with self._lock:
            previous = await self._store.checkpoints.find_one(
                {"agentId": agent_id}, sort=[("sequence", -1)]
            )
            checkpoint = Checkpoint(
                agent_id=agent_id,
                summary=summary,
                resume_pointer=resume_pointer,
                tokens_used=tokens_used,
                sequence=previous.sequence + 1 if previous else 0,
                created_at=datetime.now(),
            )
            await self._store.checkpoints.insert(checkpoint)

        logger.info(
            "Checkpoint %s for agent %s (phase=%s)",
            short_id(checkpoint.checkpoint_id),
            short_id(agent_id),
            resume_pointer.phase,
        )
        if self._events:
            self._events.emit(
                EventType.CHECKPOINT_NEW,
                checkpointId=checkpoint.checkpoint_id,
                agentId=agent_id,
                phase=resume_pointer.phase,
            )
        return checkpoint

    async def get_latest_checkpoint(self, agent_id: str) -> Checkpoint | None:
        return await self._store.checkpoints.find_one({"agentId": agent_id}, sort=_LATEST_FIRST)

    async def list_checkpoints(self, agent_id: str) -> list[Checkpoint]:
        """List an agent's checkpoints, oldest first."""
        return await self._store.checkpoints.find(
            {"agentId": agent_id}, sort=[("createdAt", 1), ("sequence", 1)]
        )

    async def resume_from_checkpoint(self, agent_id: str) -> ResumeState:
        """Load the latest checkpoint and its rendered resume context."""
        checkpoint = await self.get_latest_checkpoint(agent_id)
        if checkpoint is None:
            return ResumeState(checkpoint=None, resume_context=None)

        logger.info(
            "Resuming agent %s from checkpoint %s",
            short_id(agent_id),
            short_id(checkpoint.checkpoint_id),
        )
        return ResumeState(checkpoint=checkpoint, resume_context=build_resume_context(checkpoint))

    async def get_resume_context(self, agent_id: str) -> str | None:
        """Resume context string, or None when the agent starts fresh."""
        state = await self.resume_from_checkpoint(agent_id)
        return state.resume_context
