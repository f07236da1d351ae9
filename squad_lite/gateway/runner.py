"""Agent runner: one completion call per agent turn.

The runner assembles the system prompt (skill file, identity, tool list,
resume context), sends the task as the single user message and returns the
concatenated text. Provider errors propagate unchanged; there is no retry.
"""

import logging
from pathlib import Path
from typing import Callable

from ..types import (
    AgentType,
    LLMMessage,
    LLMRequest,
    RunConfig,
    RunResult,
    Specialization,
    TokenUsage,
    short_id,
)
from .providers.base import BaseProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 8192

_TOOLS = """You have access to Squad Lite coordination tools:

- `checkInbox()` - Get unread messages from other agents
- `sendMessage(toAgentId, content, type)` - Send message to another agent
- `checkpoint(summary, resumePointer)` - Save your state for potential resume
- `createTask(title, description)` - Create a new work unit
- `assignTask(taskId, agentId)` - Assign task to a specialist
- `completeTask(taskId, result)` - Mark task as completed with result"""


class AgentRunner:
    """Runs agent turns against a completion provider.

    Example:
        runner = AgentRunner(AnthropicProvider(api_key="..."))
        result = await runner.run(
            RunConfig(agent_id=agent_id, agent_type=AgentType.DIRECTOR, task="...")
        )
    """

    def __init__(
        self,
        provider: BaseProvider,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        skills_dir: str | Path = ".claude/skills",
    ):
        self.provider = provider
        self.model = model
        self.max_tokens = max_tokens
        self.skills_dir = Path(skills_dir)

    def skill_path(self, agent_type: AgentType, specialization: Specialization | None = None) -> Path | None:
        if agent_type == AgentType.DIRECTOR:
            return self.skills_dir / "director" / "SKILL.md"
        if specialization and specialization != Specialization.GENERAL:
            return self.skills_dir / "specialist" / Specialization(specialization).value / "SKILL.md"
        # General specialists have no skill file
        return None

    def load_skill_content(self, agent_type: AgentType, specialization: Specialization | None = None) -> str:
        """Read the skill file for an agent, or return "" when there is none."""
        path = self.skill_path(agent_type, specialization)
        if path is None:
            return ""
        if not path.is_file():
            logger.debug("Skill file not found: %s", path)
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Error loading skill %s: %s", path, e)
            return ""

    def build_system_prompt(self, config: RunConfig, skill_content: str = "") -> str:
        sections: list[str] = []

        if skill_content:
            sections.extend([skill_content, "", "---", ""])

        sections.extend(
            [
                "## Agent Identity",
                "",
                f"- **Agent ID:** {config.agent_id}",
                f"- **Type:** {AgentType(config.agent_type).value}",
            ]
        )
        if config.specialization:
            sections.append(f"- **Specialization:** {Specialization(config.specialization).value}")
        sections.append("")

        sections.extend(["## Available Tools", "", _TOOLS, ""])

        if config.resume_context:
            sections.extend(["---", "", "## Resuming from Previous Session", "", config.resume_context])

        return "\n".join(sections)

    async def run(
        self,
        config: RunConfig,
        on_message: Callable[[str], None] | None = None,
    ) -> RunResult:
        skill_content = self.load_skill_content(config.agent_type, config.specialization)
        system_prompt = self.build_system_prompt(config, skill_content)

        label = AgentType(config.agent_type).value
        if config.specialization:
            label += f":{Specialization(config.specialization).value}"
        logger.info("Running %s (%s)", label, short_id(config.agent_id))

        request = LLMRequest(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[
                LLMMessage(role="system", content=system_prompt),
                LLMMessage(role="user", content=config.task),
            ],
            metadata={"agent_id": config.agent_id},
        )
        response = await self.provider.complete(request)

        content = response.content or ""
        if on_message:
            on_message(content)

        logger.info(
            "Completed (%d in / %d out)", response.input_tokens, response.output_tokens
        )
        return RunResult(
            content=content,
            stop_reason=response.stop_reason or "unknown",
            usage=TokenUsage(
                input_tokens=response.input_tokens,
                output_tokens=response.output_tokens,
            ),
        )
