"""Context packets and system prompts for agent completion calls."""

import math

from pydantic import BaseModel, Field

from ..store import Store
from ..types import AgentType, Message, Specialization
from .checkpoint import CheckpointManager
from .messages import MessageBus


class ContextPacket(BaseModel):
    """Everything an agent needs to start a turn."""

    agent_id: str
    agent_type: AgentType | None = None
    specialization: Specialization | None = None
    task: str
    unread_messages: list[Message] = Field(default_factory=list)
    resume_context: str | None = None
    token_estimate: int = 0


def calculate_token_estimate(text: str) -> int:
    """Rough token count at four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


async def build_context_packet(
    store: Store,
    agent_id: str,
    task: str,
    include_checkpoint: bool = False,
    max_messages: int = 10,
) -> ContextPacket:
    """Gather the agent record, unread mail and optional resume context."""
    agent = await store.agents.find_one({"agentId": agent_id})
    unread = await MessageBus(store).get_unread_messages(agent_id, limit=max_messages)

    resume_context = None
    if include_checkpoint:
        resume_context = await CheckpointManager(store).get_resume_context(agent_id)

    packet = ContextPacket(
        agent_id=agent_id,
        agent_type=agent.type if agent else None,
        specialization=agent.specialization if agent else None,
        task=task,
        unread_messages=unread,
        resume_context=resume_context,
    )
    packet.token_estimate = calculate_token_estimate(packet.model_dump_json())
    return packet


_TOOLS = [
    "- `checkInbox()` - Get unread messages from other agents",
    "- `sendMessage(toAgentId, content, type)` - Send message to another agent",
    "- `checkpoint(summary, resumePointer)` - Save your state for potential resume",
    "- `createTask(title, description)` - Create a new work unit",
    "- `assignTask(taskId, agentId)` - Assign task to a specialist",
    "- `completeTask(taskId, result)` - Mark task as completed with result",
]


def create_agent_system_prompt(
    agent_id: str,
    agent_type: AgentType,
    specialization: Specialization | None = None,
    resume_context: str | None = None,
) -> str:
    agent_type = AgentType(agent_type)
    spec = Specialization(specialization).value if specialization else None

    sections = ["# Agent Identity", "", f"- **Agent ID:** {agent_id}", f"- **Type:** {agent_type.value}"]
    if spec:
        sections.append(f"- **Specialization:** {spec}")
    sections.extend(["", "## Role", ""])

    if agent_type == AgentType.DIRECTOR:
        sections.extend(
            [
                "You are a **Director Agent** responsible for:",
                "- Decomposing high-level tasks into subtasks",
                "- Spawning and coordinating specialist agents",
                "- Aggregating results from specialists",
                "- Making strategic decisions about task execution",
            ]
        )
    else:
        sections.extend(
            [
                f"You are a **Specialist Agent** ({spec or 'general'}) responsible for:",
                "- Executing specific tasks assigned by the Director",
                "- Reporting progress and results",
                "- Asking for clarification when needed",
            ]
        )

    sections.extend(
        ["", "## Available Tools", "", "You have access to the following coordination tools:", ""]
    )
    sections.extend(_TOOLS)
    sections.append("")

    if resume_context:
        sections.extend(["---", "", "## Resuming from Previous Session", "", resume_context])

    return "\n".join(sections)
