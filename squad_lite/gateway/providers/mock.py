"""Mock completion provider for running squads without external API calls."""

import asyncio
import time
from typing import Callable

from ...types import LLMRequest, LLMResponse
from .base import BaseProvider


class MockProvider(BaseProvider):
    """Mock completion provider for testing.

    Responses are chosen by the first keyword found in the user message, a
    custom generator, or the default response.

    Example:
        provider = MockProvider(
            responses={
                "break it down": '[{"title": "Research X", "description": "..."}]',
            },
            default_response="Done.",
        )
    """

    provider_name = "mock"

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        default_response: str = "This is a mock response from squad-lite MockProvider.",
        latency_ms: float = 0,
        tokens_per_call: tuple[int, int] = (100, 50),
        response_generator: Callable[[LLMRequest], str] | None = None,
        fail_with: Exception | None = None,
    ):
        """Initialize mock provider.

        Args:
            responses: Dict mapping keywords to responses.
            default_response: Default response when no keyword matches.
            latency_ms: Simulated latency in milliseconds.
            tokens_per_call: Tuple of (input_tokens, output_tokens) per call.
            response_generator: Custom function to generate responses.
            fail_with: Exception raised by every call until cleared.
        """
        super().__init__()
        self._responses = responses or {}
        self._default_response = default_response
        self._latency_ms = latency_ms
        self._tokens_per_call = tokens_per_call
        self._response_generator = response_generator
        self._fail_with = fail_with
        self._call_log: list[LLMRequest] = []

    @property
    def call_log(self) -> list[LLMRequest]:
        """Get log of all requests made to this provider."""
        return self._call_log

    def set_response(self, keyword: str, response: str) -> None:
        self._responses[keyword] = response

    def set_generator(self, generator: Callable[[LLMRequest], str]) -> None:
        self._response_generator = generator

    def fail_with(self, error: Exception | None) -> None:
        """Make subsequent calls raise ``error``; pass None to recover."""
        self._fail_with = error

    async def complete(self, request: LLMRequest) -> LLMResponse:
        self._call_log.append(request)

        if self._latency_ms:
            await asyncio.sleep(self._latency_ms / 1000)

        start_time = time.time()

        if self._fail_with is not None:
            raise self._fail_with

        content = self._generate_response(request)

        latency_ms = (time.time() - start_time) * 1000 + self._latency_ms
        input_tokens, output_tokens = self._tokens_per_call

        response = LLMResponse(
            content=content,
            stop_reason="end_turn",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=request.model,
            provider=self.provider_name,
            latency_ms=latency_ms,
        )

        self.record_metrics(response)
        return response

    def _generate_response(self, request: LLMRequest) -> str:
        if self._response_generator:
            return self._response_generator(request)

        user_content = ""
        for msg in request.messages:
            if msg.role == "user":
                user_content = msg.content if isinstance(msg.content, str) else str(msg.content)
                break

        for keyword, response in self._responses.items():
            if keyword.lower() in user_content.lower():
                return response

        return self._default_response

    def reset(self) -> None:
        """Reset call log and metrics."""
        self._call_log.clear()
        self.reset_metrics()
