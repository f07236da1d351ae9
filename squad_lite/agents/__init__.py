"""Director and specialist agents."""

from .base import AgentContext, AgentRegistry, Squad
from .director import Director, determine_specialization, parse_subtasks
from .specialist import Specialist, build_task_prompt

__all__ = [
    "AgentContext",
    "AgentRegistry",
    "Director",
    "Specialist",
    "Squad",
    "build_task_prompt",
    "determine_specialization",
    "parse_subtasks",
]
