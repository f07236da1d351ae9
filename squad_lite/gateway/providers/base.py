"""Base completion provider interface for squad-lite.

All completion provider implementations must inherit from BaseProvider.
"""

from abc import ABC, abstractmethod
from typing import Any

from ...types import LLMRequest, LLMResponse


class BaseProvider(ABC):
    """Abstract base class for completion providers.

    Example:
        class MyProvider(BaseProvider):
            provider_name = "mine"

            async def complete(self, request: LLMRequest) -> LLMResponse:
                ...
    """

    # Provider identifier
    provider_name: str = ""

    # Default model
    default_model: str = ""

    # Pricing per 1M tokens (input, output)
    pricing: dict[str, tuple[float, float]] = {}

    def __init__(self):
        self._total_calls = 0
        self._total_tokens = 0
        self._total_cost = 0.0
        self._total_latency_ms = 0.0

    @abstractmethod
    async def complete(self, request: LLMRequest) -> LLMResponse:
        """Send a completion request.

        Errors from the underlying client propagate unchanged.
        """
        pass

    def calculate_cost(self, model: str, input_tokens: int, output_tokens: int) -> float:
        """Cost in dollars, or 0.0 for an unpriced model."""
        if model not in self.pricing:
            for model_key in self.pricing:
                if model_key in model or model in model_key:
                    model = model_key
                    break
            else:
                return 0.0

        input_price, output_price = self.pricing[model]
        return (input_tokens * input_price + output_tokens * output_price) / 1_000_000

    def record_metrics(self, response: LLMResponse) -> None:
        self._total_calls += 1
        self._total_tokens += response.input_tokens + response.output_tokens
        self._total_cost += response.cost
        self._total_latency_ms += response.latency_ms

    def get_metrics(self) -> dict[str, Any]:
        return {
            "total_calls": self._total_calls,
            "total_tokens": self._total_tokens,
            "total_cost": self._total_cost,
            "total_latency_ms": self._total_latency_ms,
            "avg_latency_ms": (
                self._total_latency_ms / self._total_calls if self._total_calls > 0 else 0
            ),
        }

    def reset_metrics(self) -> None:
        self._total_calls = 0
        self._total_tokens = 0
        self._total_cost = 0.0
        self._total_latency_ms = 0.0


class ProviderFactory:
    """Registry of completion provider classes.

    Example:
        ProviderFactory.register("anthropic", AnthropicProvider)
        provider = ProviderFactory.create("anthropic", api_key="sk-ant-...")
    """

    _providers: dict[str, type[BaseProvider]] = {}

    @classmethod
    def register(cls, name: str, provider_class: type[BaseProvider]) -> None:
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, name: str, **kwargs: Any) -> BaseProvider:
        """Instantiate a registered provider.

        Raises:
            KeyError: If provider not registered.
        """
        if name not in cls._providers:
            raise KeyError(f"Provider '{name}' not registered")
        return cls._providers[name](**kwargs)

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers
