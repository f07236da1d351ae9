"""squad-lite examples.

Run: ANTHROPIC_API_KEY=sk-ant-... python examples/simple.py
Without a key the examples run against the mock providers.
"""

import asyncio
import os

from squad_lite import (
    AgentRunner,
    Director,
    MockProvider,
    MockSandboxProvider,
    Squad,
    SquadConfig,
    SquadService,
    Store,
)

API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")


def build_squad() -> Squad:
    if API_KEY:
        return Squad.from_config(SquadConfig.from_env(), sandbox_provider=MockSandboxProvider())

    provider = MockProvider(
        responses={
            "break it down": (
                '[{"title": "Research solar adoption", "description": "Collect recent figures"},'
                ' {"title": "Write the briefing", "description": "One page for executives"}]'
            ),
        },
        default_response="Mock specialist output.",
    )
    return Squad.create(
        Store.in_memory(),
        AgentRunner(provider),
        sandbox_provider=MockSandboxProvider(),
        poll_interval=0.1,
    )


async def orchestrate():
    """Example 1: Director fans a goal out to specialists."""
    print("\n" + "=" * 50)
    print("EXAMPLE 1: ORCHESTRATION")
    print("=" * 50)

    squad = build_squad()
    squad.events.on("*", lambda e: print(f"  [{e.type.value}] {e.data.get('status', '')}"))

    director = await Director.create(squad)
    report = await director.orchestrate("Brief the board on residential solar adoption")

    print(f"\n{report}")


async def kill_and_restart():
    """Example 2: Interrupt a specialist and resume it from its checkpoint."""
    print("\n" + "=" * 50)
    print("EXAMPLE 2: KILL AND RESTART")
    print("=" * 50)

    squad = build_squad()
    service = SquadService(squad)

    director = await service.create_agent()
    specialist = await service.create_agent("specialist", "researcher", director["agentId"])
    submitted = await service.submit_task(specialist["agentId"], "Survey heat pump subsidies")
    await squad.tasks.start_task(submitted["taskId"])
    await squad.registry.update_agent_status(specialist["agentId"], "working", submitted["taskId"])

    killed = await service.kill_agent(specialist["agentId"])
    print(f"Killed: checkpoint {killed['checkpointId']}")

    restarted = await service.restart_agent(specialist["agentId"])
    print(f"Restarted in sandbox {restarted['sandboxId']}")
    print(restarted["resumeContext"])


async def main():
    if not API_KEY:
        print("No ANTHROPIC_API_KEY set, using mock providers")

    await orchestrate()
    await kill_and_restart()


if __name__ == "__main__":
    asyncio.run(main())
