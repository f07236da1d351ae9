"""Custom exceptions for squad-lite."""

from typing import Any


class SquadError(Exception):
    """Base exception for all squad-lite errors."""

    pass


# =============================================================================
# Not Found
# =============================================================================


class NotFoundError(SquadError):
    """Raised when a referenced entity does not exist."""

    pass


class AgentNotFoundError(NotFoundError):
    """Raised when an agent id is unknown."""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        super().__init__(f"Agent {agent_id} not found")


class TaskNotFoundError(NotFoundError):
    """Raised when a task id is unknown."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found")


# =============================================================================
# Sandbox Exceptions
# =============================================================================


class SandboxError(SquadError):
    """Base exception for sandbox lifecycle errors."""

    def __init__(self, message: str, sandbox_id: str | None = None):
        self.sandbox_id = sandbox_id
        super().__init__(message)


class SandboxNotFoundError(SandboxError, NotFoundError):
    """Raised when no live sandbox exists for an agent."""

    def __init__(self, agent_id: str, sandbox_id: str | None = None):
        self.agent_id = agent_id
        super().__init__(f"Sandbox not found for agent: {agent_id}", sandbox_id)


class SandboxCreationError(SandboxError):
    """Raised when the remote sandbox could not be provisioned."""

    def __init__(self, message: str):
        super().__init__(message)


class CommandTimeoutError(SandboxError):
    """Raised when a sandbox command exceeds its deadline."""

    def __init__(self, sandbox_id: str, command: str):
        self.command = command
        super().__init__(f"Command timed out: {command}", sandbox_id)


class CommandExecutionError(SandboxError):
    """Raised when a sandbox command fails unexpectedly."""

    def __init__(self, sandbox_id: str, command: str, exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Command failed with exit code {exit_code}: {command}", sandbox_id)


class SandboxKilledError(SandboxError):
    """Raised when operating on a sandbox that was already killed."""

    def __init__(self, sandbox_id: str):
        super().__init__(f"Operation on killed sandbox: {sandbox_id}", sandbox_id)


# =============================================================================
# Sandbox Provider Exceptions
# =============================================================================


class SandboxProviderError(SquadError):
    """Raised by a sandbox provider when a remote call fails."""

    def __init__(self, provider: str, message: str, original_error: Exception | None = None):
        self.provider = provider
        self.original_error = original_error
        super().__init__(f"Sandbox provider '{provider}' error: {message}")


class SandboxTimeoutError(SandboxProviderError):
    """Raised by a sandbox provider when a command hits its timeout."""

    def __init__(self, provider: str, message: str = "command timeout"):
        super().__init__(provider, message)


# =============================================================================
# Store Exceptions
# =============================================================================


class StoreError(SquadError):
    """Base exception for store errors."""

    pass


class DuplicateKeyError(StoreError):
    """Raised when inserting a document whose primary key already exists."""

    def __init__(self, collection: str, key: str, value: Any):
        self.collection = collection
        self.key = key
        self.value = value
        super().__init__(f"Duplicate {key} '{value}' in collection '{collection}'")


class ValidationFailure(SquadError):
    """Raised when a record violates its shape or range constraints."""

    pass


class RecordValidationError(ValidationFailure):
    """Raised when a document fails validation at the store boundary."""

    def __init__(self, collection: str, errors: list[str]):
        self.collection = collection
        self.errors = errors
        error_list = "; ".join(errors[:5])
        if len(errors) > 5:
            error_list += f" ... and {len(errors) - 5} more"
        super().__init__(f"Invalid {collection} record: {error_list}")


# =============================================================================
# Task Exceptions
# =============================================================================


class TaskError(SquadError):
    """Base exception for task coordination errors."""

    pass


class InvalidTaskTransitionError(TaskError):
    """Raised when a task status change would move backwards or leave a terminal state."""

    def __init__(self, task_id: str, current: str, requested: str):
        self.task_id = task_id
        self.current = current
        self.requested = requested
        super().__init__(f"Task {task_id} cannot move from '{current}' to '{requested}'")


class TaskConflictError(TaskError):
    """Raised when a concurrent writer changed the task status first."""

    def __init__(self, task_id: str, expected: str):
        self.task_id = task_id
        self.expected = expected
        super().__init__(f"Task {task_id} changed concurrently (expected status '{expected}')")
