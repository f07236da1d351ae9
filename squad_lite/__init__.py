"""squad-lite - Director/specialist agent squads with checkpointed resume.

Simple usage:
    from squad_lite import Director, Squad

    squad = Squad.from_config()
    director = await Director.create(squad)
    report = await director.orchestrate("Research and summarize X")

Advanced usage:
    from squad_lite import SandboxManager, TaskBoard, MessageBus, CheckpointManager
"""

__version__ = "0.1.0"

# =============================================================================
# AGENTS (start here)
# =============================================================================

from .agents import AgentContext, AgentRegistry, Director, Specialist, Squad
from .config import SandboxProviderName, SquadConfig, StoreBackend
from .service import ErrorResponse, SquadService, error_response

# =============================================================================
# ADVANCED API
# =============================================================================

# Types
from .types import (
    Agent,
    AgentLifecycle,
    AgentType,
    Checkpoint,
    CheckpointSummary,
    CommandOptions,
    CommandResult,
    Message,
    MessagePriority,
    MessageType,
    ResumePointer,
    RunConfig,
    RunResult,
    SandboxConfig,
    SandboxInstance,
    SandboxStatus,
    SandboxTracking,
    SandboxTrackingStatus,
    Specialization,
    Task,
    TaskAssignment,
    TaskStatus,
)

# Exceptions
from .exceptions import (
    AgentNotFoundError,
    CommandExecutionError,
    CommandTimeoutError,
    DuplicateKeyError,
    InvalidTaskTransitionError,
    NotFoundError,
    RecordValidationError,
    SandboxCreationError,
    SandboxError,
    SandboxKilledError,
    SandboxNotFoundError,
    SandboxProviderError,
    SandboxTimeoutError,
    SquadError,
    StoreError,
    TaskConflictError,
    TaskError,
    TaskNotFoundError,
    ValidationFailure,
)

# Coordination
from .coordination import (
    CheckpointManager,
    MessageBus,
    ResumeState,
    TaskBoard,
    build_context_packet,
    calculate_token_estimate,
    create_agent_system_prompt,
    format_messages_for_context,
)

# Infrastructure
from .events import Event, EventEmitter, EventType
from .gateway import AgentRunner, AnthropicProvider, BaseProvider, MockProvider, ProviderFactory
from .sandbox import (
    E2BProvider,
    MockCommandOutput,
    MockSandboxProvider,
    SandboxManager,
    SandboxProvider,
    SandboxProviderFactory,
)
from .store import Store
from .utils import StructuredLogger, configure_logging, get_logger

__all__ = [
    "__version__",
    # Agents
    "AgentContext",
    "AgentRegistry",
    "Director",
    "Specialist",
    "Squad",
    "SquadConfig",
    "StoreBackend",
    "SandboxProviderName",
    "SquadService",
    "ErrorResponse",
    "error_response",
    # Types
    "Agent",
    "AgentLifecycle",
    "AgentType",
    "Checkpoint",
    "CheckpointSummary",
    "CommandOptions",
    "CommandResult",
    "Message",
    "MessagePriority",
    "MessageType",
    "ResumePointer",
    "RunConfig",
    "RunResult",
    "SandboxConfig",
    "SandboxInstance",
    "SandboxStatus",
    "SandboxTracking",
    "SandboxTrackingStatus",
    "Specialization",
    "Task",
    "TaskAssignment",
    "TaskStatus",
    # Exceptions
    "AgentNotFoundError",
    "CommandExecutionError",
    "CommandTimeoutError",
    "DuplicateKeyError",
    "InvalidTaskTransitionError",
    "NotFoundError",
    "RecordValidationError",
    "SandboxCreationError",
    "SandboxError",
    "SandboxKilledError",
    "SandboxNotFoundError",
    "SandboxProviderError",
    "SandboxTimeoutError",
    "SquadError",
    "StoreError",
    "TaskConflictError",
    "TaskError",
    "TaskNotFoundError",
    "ValidationFailure",
    # Coordination
    "CheckpointManager",
    "MessageBus",
    "ResumeState",
    "TaskBoard",
    "build_context_packet",
    "calculate_token_estimate",
    "create_agent_system_prompt",
    "format_messages_for_context",
    # Infrastructure
    "Event",
    "EventEmitter",
    "EventType",
    "AgentRunner",
    "AnthropicProvider",
    "BaseProvider",
    "MockProvider",
    "ProviderFactory",
    "E2BProvider",
    "MockCommandOutput",
    "MockSandboxProvider",
    "SandboxManager",
    "SandboxProvider",
    "SandboxProviderFactory",
    "Store",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
