"""The five collections shared by every squad component."""

from pathlib import Path
from typing import Callable

from ..config import SquadConfig, StoreBackend
from ..types import Agent, Checkpoint, Message, SandboxTracking, Task
from .base import DocumentCollection, RecordCollection
from .file import FileCollection
from .memory import InMemoryCollection

BackendFactory = Callable[[str, str], DocumentCollection]

# collection name -> primary key
PRIMARY_KEYS: dict[str, str] = {
    "agents": "agentId",
    "messages": "messageId",
    "checkpoints": "checkpointId",
    "tasks": "taskId",
    "sandbox_tracking": "sandboxId",
}


class Store:
    """Typed access to the agents, messages, checkpoints, tasks and
    sandbox_tracking collections.

    Example:
        store = Store.in_memory()
        await store.tasks.insert(Task(title="Research", description="..."))
    """

    def __init__(self, backend_factory: BackendFactory):
        def make(name: str, model):
            return RecordCollection(backend_factory(name, PRIMARY_KEYS[name]), model)

        self.agents: RecordCollection[Agent] = make("agents", Agent)
        self.messages: RecordCollection[Message] = make("messages", Message)
        self.checkpoints: RecordCollection[Checkpoint] = make("checkpoints", Checkpoint)
        self.tasks: RecordCollection[Task] = make("tasks", Task)
        self.sandbox_tracking: RecordCollection[SandboxTracking] = make(
            "sandbox_tracking", SandboxTracking
        )

    @classmethod
    def in_memory(cls) -> "Store":
        return cls(InMemoryCollection)

    @classmethod
    def from_directory(cls, base_dir: str | Path) -> "Store":
        return cls(lambda name, key: FileCollection(name, key, base_dir))

    @classmethod
    def from_config(cls, config: SquadConfig) -> "Store":
        if config.store_backend == StoreBackend.FILE:
            return cls.from_directory(config.store_path)
        return cls.in_memory()

    def collections(self) -> list[RecordCollection]:
        return [self.agents, self.messages, self.checkpoints, self.tasks, self.sandbox_tracking]
