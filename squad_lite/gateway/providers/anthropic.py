"""Anthropic completion provider for squad-lite."""

import time
from typing import Any

from ...types import LLMRequest, LLMResponse
from .base import BaseProvider


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API provider.

    Example:
        provider = AnthropicProvider(api_key="sk-ant-...")
        response = await provider.complete(request)
    """

    provider_name = "anthropic"

    default_model = "claude-sonnet-4-20250514"

    # Pricing per 1M tokens (input, output)
    pricing = {
        "claude-3-5-haiku-20241022": (0.80, 4.0),
        "claude-3-5-sonnet-20241022": (3.0, 15.0),
        "claude-sonnet-4-20250514": (3.0, 15.0),
        "claude-opus-4-20250514": (15.0, 75.0),
    }

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 600.0,
        max_tokens: int = 8192,
    ):
        """Initialize Anthropic provider.

        Args:
            api_key: Anthropic API key. If None, uses ANTHROPIC_API_KEY env var.
            base_url: Optional custom base URL.
            timeout: Request timeout in seconds.
            max_tokens: Default max tokens for responses.
        """
        super().__init__()
        self._api_key = api_key
        self._base_url = base_url
        self._timeout = timeout
        self._max_tokens = max_tokens
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError:
                raise ImportError(
                    "Anthropic package not installed. Install with: pip install squad-lite[anthropic]"
                )

            kwargs: dict[str, Any] = {"timeout": self._timeout}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            if self._base_url:
                kwargs["base_url"] = self._base_url

            self._client = AsyncAnthropic(**kwargs)

        return self._client

    async def complete(self, request: LLMRequest) -> LLMResponse:
        client = self._get_client()
        model = request.model or self.default_model

        start_time = time.time()

        # Anthropic takes the system prompt as a separate parameter
        system_message = None
        messages = []
        for msg in request.messages:
            if msg.role == "system":
                system_message = msg.content if isinstance(msg.content, str) else str(msg.content)
            else:
                messages.append({"role": msg.role, "content": msg.content})

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": request.max_tokens or self._max_tokens,
        }
        if system_message:
            kwargs["system"] = system_message
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        response = await client.messages.create(**kwargs)

        latency_ms = (time.time() - start_time) * 1000

        content = "".join(block.text for block in response.content if block.type == "text")

        input_tokens = response.usage.input_tokens if response.usage else 0
        output_tokens = response.usage.output_tokens if response.usage else 0

        llm_response = LLMResponse(
            content=content,
            stop_reason=response.stop_reason,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=self.calculate_cost(model, input_tokens, output_tokens),
            model=model,
            provider=self.provider_name,
            latency_ms=latency_ms,
        )

        self.record_metrics(llm_response)
        return llm_response
