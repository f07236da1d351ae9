"""Tests for completion providers and the agent runner."""

import tempfile
from pathlib import Path

import pytest

from squad_lite.gateway import AgentRunner, AnthropicProvider, MockProvider, ProviderFactory
from squad_lite.types import (
    AgentType,
    LLMMessage,
    LLMRequest,
    RunConfig,
    Specialization,
)


class TestMockProvider:
    """Tests for MockProvider."""

    @pytest.mark.asyncio
    async def test_keyword_responses(self):
        provider = MockProvider(responses={"subtasks": "[]"}, default_response="plain")

        keyed = await provider.complete(
            LLMRequest(model="m", messages=[LLMMessage(role="user", content="Give me SUBTASKS")])
        )
        default = await provider.complete(
            LLMRequest(model="m", messages=[LLMMessage(role="user", content="hello")])
        )

        assert keyed.content == "[]"
        assert default.content == "plain"
        assert len(provider.call_log) == 2
        assert provider.get_metrics()["total_calls"] == 2

    @pytest.mark.asyncio
    async def test_generator(self):
        provider = MockProvider(response_generator=lambda req: req.messages[-1].content.upper())

        response = await provider.complete(
            LLMRequest(model="m", messages=[LLMMessage(role="user", content="abc")])
        )

        assert response.content == "ABC"
        assert response.provider == "mock"

    @pytest.mark.asyncio
    async def test_fail_on_demand(self):
        provider = MockProvider()
        provider.fail_with(RuntimeError("rate limited"))

        with pytest.raises(RuntimeError, match="rate limited"):
            await provider.complete(LLMRequest(model="m", messages=[]))

        provider.fail_with(None)
        assert (await provider.complete(LLMRequest(model="m", messages=[]))).content


class TestProviderFactory:
    """Tests for provider registration."""

    def test_registered(self):
        assert ProviderFactory.is_registered("anthropic")
        assert isinstance(ProviderFactory.create("mock"), MockProvider)
        with pytest.raises(KeyError):
            ProviderFactory.create("nope")

    def test_anthropic_pricing(self):
        provider = AnthropicProvider(api_key="sk-test")
        assert provider.calculate_cost("claude-sonnet-4-20250514", 1_000_000, 0) == 3.0
        assert provider.calculate_cost("unknown-model", 1000, 1000) == 0.0


class TestAgentRunner:
    """Tests for AgentRunner."""

    @pytest.mark.asyncio
    async def test_run_builds_request(self):
        provider = MockProvider(default_response="answer", tokens_per_call=(12, 3))
        runner = AgentRunner(provider, model="claude-test", max_tokens=100, skills_dir="/nonexistent")
        seen = []

        result = await runner.run(
            RunConfig(
                agent_id="a1",
                agent_type=AgentType.SPECIALIST,
                specialization=Specialization.WRITER,
                task="Write it",
                resume_context="CTX",
            ),
            on_message=seen.append,
        )

        assert result.content == "answer"
        assert result.stop_reason == "end_turn"
        assert result.usage.input_tokens == 12
        assert result.usage.total == 15
        assert seen == ["answer"]

        request = provider.call_log[0]
        assert request.model == "claude-test"
        assert request.max_tokens == 100
        assert request.messages[1].content == "Write it"
        system = request.messages[0].content
        assert "- **Specialization:** writer" in system
        assert system.endswith("## Resuming from Previous Session\n\nCTX")

    @pytest.mark.asyncio
    async def test_provider_errors_propagate(self):
        provider = MockProvider(fail_with=ConnectionError("down"))
        runner = AgentRunner(provider)

        with pytest.raises(ConnectionError):
            await runner.run(RunConfig(agent_id="a1", agent_type=AgentType.DIRECTOR, task="x"))

    def test_skill_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "director").mkdir()
            (Path(tmp) / "director" / "SKILL.md").write_text("DIRECTOR SKILL")
            (Path(tmp) / "specialist" / "researcher").mkdir(parents=True)
            (Path(tmp) / "specialist" / "researcher" / "SKILL.md").write_text("RESEARCH SKILL")

            runner = AgentRunner(MockProvider(), skills_dir=tmp)

            assert runner.load_skill_content(AgentType.DIRECTOR) == "DIRECTOR SKILL"
            assert (
                runner.load_skill_content(AgentType.SPECIALIST, Specialization.RESEARCHER)
                == "RESEARCH SKILL"
            )
            assert runner.load_skill_content(AgentType.SPECIALIST, Specialization.WRITER) == ""
            assert runner.load_skill_content(AgentType.SPECIALIST, Specialization.GENERAL) == ""

    def test_system_prompt_layout(self):
        runner = AgentRunner(MockProvider())
        config = RunConfig(agent_id="d1", agent_type=AgentType.DIRECTOR, task="t")

        with_skill = runner.build_system_prompt(config, "SKILL")
        assert with_skill.startswith("SKILL\n\n---\n\n## Agent Identity")

        bare = runner.build_system_prompt(config)
        assert bare.startswith("## Agent Identity\n\n- **Agent ID:** d1\n- **Type:** director")
        assert "Specialization" not in bare
        assert "Resuming" not in bare
