"""Gemini generateContent API (Vertex and AI Studio share the wire format)."""
from typing import Any

from app.providers.base import HttpProvider, ProviderRequest, ProviderResponse, StreamChunk

FINISH_REASONS = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
}

ROLES = {"user": "user", "assistant": "model"}


def to_openai_finish_reason(reason: str | None) -> str | None:
    if reason is None:
        return None
    return FINISH_REASONS.get(reason, reason.lower())


def _candidate_text(candidate: dict[str, Any]) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


class GoogleProvider(HttpProvider):
    def __init__(self, provider_id: str, api_key: str, base_url: str, **kwargs: Any) -> None:
        self._provider_id = provider_id
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)

    @property
    def provider_name(self) -> str:
        return self._provider_id

    def build_headers(self, api_key: str) -> dict[str, str]:
        # Authenticated with the ``key`` query parameter instead.
        return {}

    def endpoint(self, request: ProviderRequest) -> str:
        action = "streamGenerateContent" if request.stream else "generateContent"
        return f"/models/{request.model}:{action}"

    def query_params(self, request: ProviderRequest) -> dict[str, str]:
        params = {"key": self._api_key}
        if request.stream:
            params["alt"] = "sse"
        return params

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        system_parts: list[dict[str, str]] = []
        contents: list[dict[str, Any]] = []
        for msg in request.messages:
            if msg.get("role") == "system":
                system_parts.append({"text": msg["content"]})
            else:
                contents.append({
                    "role": ROLES.get(msg["role"], "user"),
                    "parts": [{"text": msg["content"]}],
                })

        generation_config: dict[str, Any] = {}
        if request.temperature is not None:
            generation_config["temperature"] = request.temperature
        if request.top_p is not None:
            generation_config["topP"] = request.top_p
        if request.max_tokens is not None:
            generation_config["maxOutputTokens"] = request.max_tokens
        if request.frequency_penalty is not None:
            generation_config["frequencyPenalty"] = request.frequency_penalty
        if request.presence_penalty is not None:
            generation_config["presencePenalty"] = request.presence_penalty

        payload: dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}
        if generation_config:
            payload["generationConfig"] = generation_config
        return payload

    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        candidate = data["candidates"][0]
        usage = data.get("usageMetadata") or {}
        reason = candidate.get("finishReason")
        return ProviderResponse(
            content=_candidate_text(candidate),
            finish_reason=to_openai_finish_reason(reason),
            native_finish_reason=reason,
            prompt_tokens=usage.get("promptTokenCount"),
            completion_tokens=usage.get("candidatesTokenCount"),
            raw_metadata=data,
        )

    def parse_stream_event(self, data: dict[str, Any]) -> StreamChunk | None:
        candidates = data.get("candidates") or []
        usage = data.get("usageMetadata") or {}
        if not candidates:
            if not usage:
                return None
            return StreamChunk(
                prompt_tokens=usage.get("promptTokenCount"),
                completion_tokens=usage.get("candidatesTokenCount"),
                raw=data,
            )

        candidate = candidates[0]
        reason = candidate.get("finishReason")
        return StreamChunk(
            content=_candidate_text(candidate),
            finish_reason=to_openai_finish_reason(reason),
            native_finish_reason=reason,
            prompt_tokens=usage.get("promptTokenCount"),
            completion_tokens=usage.get("candidatesTokenCount"),
            raw=data,
        )
