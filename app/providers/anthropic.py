"""Anthropic Claude provider via httpx."""
from typing import Any

from app.core.exceptions import UpstreamError
from app.providers.base import HttpProvider, ProviderRequest, ProviderResponse, StreamChunk

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024

FINISH_REASONS = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}


def to_openai_finish_reason(stop_reason: str | None) -> str | None:
    if stop_reason is None:
        return None
    return FINISH_REASONS.get(stop_reason, stop_reason)


class AnthropicProvider(HttpProvider):
    @property
    def provider_name(self) -> str:
        return "anthropic"

    def build_headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}

    def endpoint(self, request: ProviderRequest) -> str:
        return "/messages"

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        # Separate system messages from user/assistant turns
        system_parts: list[str] = []
        turns: list[dict[str, Any]] = []
        for msg in request.messages:
            if msg.get("role") == "system":
                system_parts.append(msg["content"])
            else:
                turns.append({"role": msg["role"], "content": msg["content"]})

        payload: dict[str, Any] = {
            "model": request.model,
            "messages": turns,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        # The Messages API has no frequency/presence penalties.
        if request.stream:
            payload["stream"] = True
        return payload

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        usage = data.get("usage") or {}
        content_blocks = data["content"]
        text = "".join(b.get("text", "") for b in content_blocks if b.get("type") == "text")
        stop_reason = data.get("stop_reason")
        return ProviderResponse(
            content=text,
            finish_reason=to_openai_finish_reason(stop_reason),
            native_finish_reason=stop_reason,
            prompt_tokens=usage.get("input_tokens"),
            completion_tokens=usage.get("output_tokens"),
            raw_metadata=data,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamChunk | None:
        event_type = data["type"]

        if event_type == "message_start":
            usage = data["message"].get("usage") or {}
            return StreamChunk(
                role="assistant",
                content="",
                prompt_tokens=usage.get("input_tokens"),
                raw=data,
            )
        if event_type == "content_block_delta":
            delta = data["delta"]
            if delta.get("type") != "text_delta":
                return None
            return StreamChunk(content=delta["text"], raw=data)
        if event_type == "message_delta":
            stop_reason = data["delta"].get("stop_reason")
            usage = data.get("usage") or {}
            return StreamChunk(
                finish_reason=to_openai_finish_reason(stop_reason),
                native_finish_reason=stop_reason,
                completion_tokens=usage.get("output_tokens"),
                raw=data,
            )
        if event_type == "error":
            error = data.get("error") or {}
            raise UpstreamError(error.get("message") or "Anthropic stream error")
        # ping, content_block_start, content_block_stop, message_stop
        return None
