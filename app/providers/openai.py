"""OpenAI chat completions, and hosts speaking the same wire format."""
from typing import Any

from app.providers.base import HttpProvider, ProviderRequest, ProviderResponse, StreamChunk


def _usage_counts(usage: dict[str, Any] | None) -> tuple[int | None, int | None]:
    if not usage:
        return None, None
    return usage.get("prompt_tokens"), usage.get("completion_tokens")


class OpenAIProvider(HttpProvider):
    # Ask for a trailing usage chunk on streams. Not every compatible host accepts it.
    include_stream_usage = True

    @property
    def provider_name(self) -> str:
        return "openai"

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def endpoint(self, request: ProviderRequest) -> str:
        return "/chat/completions"

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "messages": request.messages,
            **request.sampling_params(),
        }
        if request.stream:
            payload["stream"] = True
            if self.include_stream_usage:
                payload["stream_options"] = {"include_usage": True}
        return payload

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        choice = data["choices"][0]
        prompt_tokens, completion_tokens = _usage_counts(data.get("usage"))
        finish_reason = choice.get("finish_reason")
        return ProviderResponse(
            content=choice["message"].get("content") or "",
            finish_reason=finish_reason,
            native_finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            raw_metadata=data,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamChunk | None:
        prompt_tokens, completion_tokens = _usage_counts(data.get("usage"))
        choices = data.get("choices") or []
        if not choices:
            # Trailing usage-only chunk
            if prompt_tokens is None and completion_tokens is None:
                return None
            return StreamChunk(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                raw=data,
            )

        choice = choices[0]
        delta = choice.get("delta") or {}
        finish_reason = choice.get("finish_reason")
        return StreamChunk(
            content=delta.get("content"),
            role=delta.get("role"),
            finish_reason=finish_reason,
            native_finish_reason=finish_reason,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            raw=data,
        )


class OpenAICompatibleProvider(OpenAIProvider):
    """inference.net, kluster.ai and other gateways: same format, own base URL."""

    include_stream_usage = False

    def __init__(self, provider_id: str, api_key: str, base_url: str, **kwargs: Any) -> None:
        self._provider_id = provider_id
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    @property
    def provider_name(self) -> str:
        return self._provider_id
