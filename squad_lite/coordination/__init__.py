"""Coordination primitives: checkpoints, messages, tasks and context."""

from .checkpoint import CheckpointManager, ResumeState, build_resume_context
from .context import (
    ContextPacket,
    build_context_packet,
    calculate_token_estimate,
    create_agent_system_prompt,
)
from .messages import MessageBus, format_messages_for_context
from .tasks import TaskBoard, aggregate_results, is_valid_transition

__all__ = [
    "CheckpointManager",
    "ResumeState",
    "build_resume_context",
    "ContextPacket",
    "build_context_packet",
    "calculate_token_estimate",
    "create_agent_system_prompt",
    "MessageBus",
    "format_messages_for_context",
    "TaskBoard",
    "aggregate_results",
    "is_valid_transition",
]
