"""Core types and data models for squad-lite.

Every persisted record is a pydantic model. Attribute names are snake_case;
documents in the store use the camelCase aliases.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def new_id() -> str:
    """Generate a new opaque record identifier."""
    return str(uuid.uuid4())


def short_id(value: str | None) -> str:
    """Shorten an identifier for log output."""
    return (value or "")[:8]


# =============================================================================
# Enums
# =============================================================================


class AgentType(str, Enum):
    """Role of an agent in the squad."""

    DIRECTOR = "director"
    SPECIALIST = "specialist"


class Specialization(str, Enum):
    """Kind of work a specialist is tuned for."""

    RESEARCHER = "researcher"
    WRITER = "writer"
    ANALYST = "analyst"
    GENERAL = "general"


class AgentLifecycle(str, Enum):
    """Lifecycle status of an agent."""

    IDLE = "idle"
    WORKING = "working"
    WAITING = "waiting"
    COMPLETED = "completed"
    ERROR = "error"


class SandboxStatus(str, Enum):
    """Sandbox status as seen on the agent record."""

    NONE = "none"
    ACTIVE = "active"
    PAUSED = "paused"
    KILLED = "killed"


class SandboxTrackingStatus(str, Enum):
    """Persisted sandbox lifecycle status."""

    CREATING = "creating"
    ACTIVE = "active"
    PAUSED = "paused"
    RESUMING = "resuming"  # Transient, only while resume() reconnects
    KILLED = "killed"


class MessageType(str, Enum):
    """Type of an inter-agent message."""

    TASK = "task"
    RESULT = "result"
    STATUS = "status"
    ERROR = "error"


class MessagePriority(str, Enum):
    """Advisory priority of a message. Delivery order ignores it."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class TaskStatus(str, Enum):
    """Status of a work unit."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED)


TERMINAL_TASK_STATUSES = (TaskStatus.COMPLETED, TaskStatus.FAILED)


# =============================================================================
# Base record
# =============================================================================


class Record(BaseModel):
    """Base class for persisted records."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    def to_document(self) -> dict[str, Any]:
        """Dump to a store document keyed by camelCase field names."""
        return self.model_dump(by_alias=True)


# =============================================================================
# Agents
# =============================================================================


class Agent(Record):
    """A registered director or specialist."""

    agent_id: str = Field(default_factory=new_id)
    type: AgentType
    specialization: Specialization | None = None
    status: AgentLifecycle = AgentLifecycle.IDLE
    sandbox_id: str | None = None
    sandbox_status: SandboxStatus = SandboxStatus.NONE
    parent_id: str | None = None
    task_id: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_heartbeat: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _check_parent(self) -> "Agent":
        if self.type == AgentType.SPECIALIST and not self.parent_id:
            raise ValueError("specialist agents require a parentId")
        if self.type == AgentType.DIRECTOR and self.parent_id:
            raise ValueError("director agents cannot have a parentId")
        return self


# =============================================================================
# Sandbox tracking
# =============================================================================


class SandboxMetadata(Record):
    agent_type: AgentType
    specialization: Specialization | None = None


class SandboxLifecycle(Record):
    created_at: datetime
    paused_at: datetime | None = None
    resumed_at: datetime | None = None
    killed_at: datetime | None = None
    last_heartbeat: datetime


class SandboxResources(Record):
    """Resource shape of a sandbox."""

    cpu_count: int = Field(default=2, gt=0)
    memory_mb: int = Field(default=512, gt=0, alias="memoryMB")
    timeout_ms: int = Field(default=600_000, gt=0)


class SandboxCosts(Record):
    estimated_cost: float = Field(default=0.0, ge=0)  # USD
    runtime_seconds: int = Field(default=0, ge=0)


class SandboxTracking(Record):
    """Persisted mirror of a sandbox session. Survives kill as a tombstone."""

    sandbox_id: str
    agent_id: str
    task_id: str | None = None
    status: SandboxTrackingStatus
    metadata: SandboxMetadata
    lifecycle: SandboxLifecycle
    resources: SandboxResources = Field(default_factory=SandboxResources)
    costs: SandboxCosts = Field(default_factory=SandboxCosts)


# =============================================================================
# Messages
# =============================================================================


class Message(Record):
    """A directed message between two agents."""

    message_id: str = Field(default_factory=new_id)
    from_agent: str
    to_agent: str
    content: str
    type: MessageType
    thread_id: str
    priority: MessagePriority = MessagePriority.NORMAL
    read_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Checkpoints
# =============================================================================


class CheckpointSummary(Record):
    goal: str
    completed: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    decisions: list[str] = Field(default_factory=list)


class ResumePointer(Record):
    next_action: str
    current_context: str | None = None
    phase: str


class Checkpoint(Record):
    """An immutable snapshot of an agent's progress."""

    checkpoint_id: str = Field(default_factory=new_id)
    agent_id: str
    summary: CheckpointSummary
    resume_pointer: ResumePointer
    tokens_used: int = Field(default=0, ge=0)
    sequence: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=datetime.now)


# =============================================================================
# Tasks
# =============================================================================


class Task(Record):
    """A unit of work, optionally a subtask of another."""

    task_id: str = Field(default_factory=new_id)
    parent_task_id: str | None = None
    assigned_to: str | None = None
    title: str
    description: str
    status: TaskStatus = TaskStatus.PENDING
    result: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @model_validator(mode="after")
    def _check_result(self) -> "Task":
        if self.result is not None and not self.status.is_terminal:
            raise ValueError(
                f"result may only be set on completed or failed tasks (status={self.status.value})"
            )
        return self


class TaskAssignment(BaseModel):
    """A subtask proposed by decomposition."""

    title: str
    description: str


# =============================================================================
# Sandbox runtime values
# =============================================================================


class SandboxConfig(BaseModel):
    """Request to provision a sandbox for an agent."""

    agent_id: str
    agent_type: AgentType
    specialization: Specialization | None = None
    timeout_ms: int | None = Field(default=None, gt=0)
    cpu_count: int | None = Field(default=None, gt=0)
    memory_mb: int | None = Field(default=None, gt=0)


@dataclass
class CommandOptions:
    """Options for running a command inside a sandbox."""

    cwd: str | None = None
    env: dict[str, str] | None = None
    timeout_ms: int | None = None
    on_stdout: Callable[[str], None] | None = None
    on_stderr: Callable[[str], None] | None = None


@dataclass
class CommandResult:
    """Outcome of a sandbox command."""

    exit_code: int
    stdout: str
    stderr: str
    error: bool


@dataclass
class SandboxInstance:
    """Live, in-memory handle to an agent's sandbox."""

    sandbox_id: str
    agent_id: str
    session: Any
    status: SandboxStatus
    agent_type: AgentType
    specialization: Specialization | None = None
    resources: SandboxResources = field(default_factory=SandboxResources)
    created_at: datetime = field(default_factory=datetime.now)
    last_heartbeat: datetime = field(default_factory=datetime.now)


# =============================================================================
# LLM Calls
# =============================================================================


class LLMMessage(BaseModel):
    """A message in an LLM conversation."""

    role: str  # "system", "user", "assistant"
    content: str | list[dict[str, Any]]


class LLMRequest(BaseModel):
    """A request to an LLM provider."""

    model: str
    messages: list[LLMMessage]
    temperature: float | None = None
    max_tokens: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class LLMResponse(BaseModel):
    """A response from an LLM provider."""

    content: str | None = None
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    model: str
    provider: str
    latency_ms: float = 0.0


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total(self) -> int:
        return self.input_tokens + self.output_tokens


class RunConfig(BaseModel):
    """One agent turn to be completed by the runner."""

    agent_id: str
    agent_type: AgentType
    specialization: Specialization | None = None
    task: str
    resume_context: str | None = None


class RunResult(BaseModel):
    """Text and usage returned by the runner."""

    content: str
    stop_reason: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
