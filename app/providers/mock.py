from collections.abc import AsyncIterator
from typing import Any

from app.providers.base import BaseProvider, ProviderRequest, ProviderResponse, StreamChunk


class MockProvider(BaseProvider):
    """Deterministic mock provider for testing and development.

    With ``report_usage=False`` it behaves like an upstream that omits usage,
    which forces the gateway onto token estimation.
    """

    def __init__(self, report_usage: bool = True) -> None:
        self.report_usage = report_usage

    @property
    def provider_name(self) -> str:
        return "mock"

    def _reply(self, request: ProviderRequest) -> str:
        user_message = next(
            (m.get("content", "") for m in reversed(request.messages) if m.get("role") == "user"),
            "",
        )
        return (
            f'Hello! I received your message: "{user_message}". '
            f"This is a mock response from model={request.model}."
        )

    def _usage(self, request: ProviderRequest, content: str) -> tuple[int | None, int | None]:
        if not self.report_usage:
            return None, None
        # Deterministic token count based on input length
        input_chars = sum(len(m.get("content", "")) for m in request.messages)
        return max(input_chars // 4, 10), max(len(content) // 4, 1)

    async def generate_completion(self, request: ProviderRequest) -> ProviderResponse:
        content = self._reply(request)
        prompt_tokens, completion_tokens = self._usage(request, content)
        raw: dict[str, Any] = {"provider": "mock", "model": request.model}
        return ProviderResponse(
            content=content,
            finish_reason="stop",
            native_finish_reason="stop",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            raw_metadata=raw,
        )

    async def stream_completion(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        content = self._reply(request)
        yield StreamChunk(role="assistant", content="")
        words = content.split(" ")
        for i, word in enumerate(words):
            yield StreamChunk(content=word if i == len(words) - 1 else f"{word} ")
        prompt_tokens, completion_tokens = self._usage(request, content)
        yield StreamChunk(
            finish_reason="stop",
            native_finish_reason="stop",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
