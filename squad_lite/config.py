"""Runtime configuration for squad-lite.

Values come from keyword arguments, falling back to environment variables:

    ANTHROPIC_API_KEY        completion provider key
    E2B_API_KEY              sandbox provider key
    SQUAD_MODEL              completion model
    SQUAD_STORE              "memory" or "file"
    SQUAD_STORE_PATH         directory for the file store
    SQUAD_SANDBOX_PROVIDER   "e2b" or "mock"
    SQUAD_LOG_LEVEL          logging level name
"""

import os
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class StoreBackend(str, Enum):
    MEMORY = "memory"
    FILE = "file"


class SandboxProviderName(str, Enum):
    E2B = "e2b"
    MOCK = "mock"


_ENV_VARS: dict[str, str] = {
    "anthropic_api_key": "ANTHROPIC_API_KEY",
    "e2b_api_key": "E2B_API_KEY",
    "model": "SQUAD_MODEL",
    "store_backend": "SQUAD_STORE",
    "store_path": "SQUAD_STORE_PATH",
    "sandbox_provider": "SQUAD_SANDBOX_PROVIDER",
    "log_level": "SQUAD_LOG_LEVEL",
}


class SquadConfig(BaseModel):
    """Configuration for a squad deployment."""

    anthropic_api_key: str | None = Field(default=None, description="Anthropic API key")
    e2b_api_key: str | None = Field(default=None, description="E2B API key")

    model: str = Field(default="claude-sonnet-4-20250514")
    max_tokens: int = Field(default=8192, gt=0)

    store_backend: StoreBackend = Field(default=StoreBackend.MEMORY)
    store_path: str | None = Field(default=None, description="Directory for the file store")

    sandbox_provider: SandboxProviderName = Field(default=SandboxProviderName.MOCK)
    sandbox_timeout_ms: int = Field(default=600_000, gt=0)
    sandbox_cost_per_cpu_hour: float = Field(default=0.0504, ge=0)

    poll_interval: float = Field(default=1.0, gt=0, description="Seconds between inbox/task polls")
    specialist_timeout: float = Field(default=60.0, gt=0, description="Director wait deadline in seconds")

    skills_dir: str = Field(default=".claude/skills")
    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def _check_store_path(self) -> "SquadConfig":
        if self.store_backend == StoreBackend.FILE and not self.store_path:
            raise ValueError("store_path is required when store_backend is 'file'")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> "SquadConfig":
        """Build a config from environment variables plus explicit overrides."""
        values: dict[str, Any] = {}
        for field_name, env_var in _ENV_VARS.items():
            value = os.environ.get(env_var)
            if value:
                values[field_name] = value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
