import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.exceptions import (
    ParseError,
    UpstreamConnectionError,
    UpstreamError,
    UpstreamTimeoutError,
)


@dataclass(frozen=True)
class ProviderRequest:
    """Unified request, already routed: ``model`` is the upstream identifier."""
    model: str
    messages: list[dict[str, Any]]
    stream: bool = False
    temperature: float | None = None
    top_p: float | None = None
    max_tokens: int | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None

    def sampling_params(self) -> dict[str, Any]:
        params = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_tokens,
            "frequency_penalty": self.frequency_penalty,
            "presence_penalty": self.presence_penalty,
        }
        return {k: v for k, v in params.items() if v is not None}


@dataclass(frozen=True)
class ProviderResponse:
    """Standardized non-streaming response from any AI provider.

    Token counts are None when the provider did not report them.
    ``finish_reason`` is OpenAI-style; ``native_finish_reason`` is what the provider sent.
    """
    content: str
    finish_reason: str | None
    prompt_tokens: int | None
    completion_tokens: int | None
    raw_metadata: dict[str, Any]
    native_finish_reason: str | None = None

    @property
    def total_tokens(self) -> int | None:
        if self.prompt_tokens is None or self.completion_tokens is None:
            return None
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class StreamChunk:
    """One unified delta, produced from exactly one upstream stream event."""
    content: str | None = None
    role: str | None = None
    finish_reason: str | None = None
    native_finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class BaseProvider(ABC):
    """Abstract interface for AI providers."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        ...

    @property
    def supports_streaming(self) -> bool:
        return True

    @abstractmethod
    async def generate_completion(self, request: ProviderRequest) -> ProviderResponse:
        """
        Call the provider and return a standardized response.
        Business logic NEVER sees raw provider details.
        """
        ...

    @abstractmethod
    def stream_completion(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        """
        Lazily yield unified chunks as the provider sends them.
        Closing the iterator early closes the upstream connection.
        """
        ...

    async def close(self) -> None:
        """Cleanup resources (e.g., httpx client)."""
        pass


def extract_error_message(response: httpx.Response) -> str:
    message = f"Error from provider: {response.status_code} {response.reason_phrase}"
    try:
        body = response.json()
    except ValueError:
        return message
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if body.get("message"):
            return str(body["message"])
    return message


@contextmanager
def upstream_errors() -> Iterator[None]:
    """Translate transport failures into gateway error classes."""
    try:
        yield
    except httpx.TimeoutException as exc:
        raise UpstreamTimeoutError(f"Upstream request timed out: {exc}") from exc
    except httpx.TransportError as exc:
        raise UpstreamConnectionError(f"Could not reach upstream provider: {exc}") from exc


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the payload of each ``data:`` line of a server-sent event stream."""
    async for line in response.aiter_lines():
        if not line.startswith("data:"):
            continue
        yield line[len("data:"):].strip()


class HttpProvider(BaseProvider):
    """Provider reached over HTTP with JSON bodies and SSE streaming.

    Subclasses translate payloads; this class owns the connection and the
    error mapping.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: httpx.Timeout | float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"content-type": "application/json", **self.build_headers(api_key)},
            timeout=timeout,
            transport=transport,
        )

    @abstractmethod
    def build_headers(self, api_key: str) -> dict[str, str]:
        ...

    @abstractmethod
    def endpoint(self, request: ProviderRequest) -> str:
        ...

    def query_params(self, request: ProviderRequest) -> dict[str, str]:
        return {}

    @abstractmethod
    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        ...

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> ProviderResponse:
        ...

    @abstractmethod
    def parse_stream_event(self, data: dict[str, Any]) -> StreamChunk | None:
        """Translate one upstream event. None for events carrying nothing to relay."""
        ...

    def _parse(self, data: Any) -> ProviderResponse:
        try:
            return self.parse_response(data)
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ParseError(
                f"Unexpected response from {self.provider_name}: {exc!r}"
            ) from exc

    def _parse_event(self, payload: str) -> StreamChunk | None:
        try:
            return self.parse_stream_event(json.loads(payload))
        except ValueError as exc:
            raise ParseError(
                f"Malformed stream event from {self.provider_name}: {payload[:200]}"
            ) from exc
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ParseError(
                f"Unexpected stream event from {self.provider_name}: {exc!r}"
            ) from exc

    async def generate_completion(self, request: ProviderRequest) -> ProviderResponse:
        with upstream_errors():
            response = await self._client.post(
                self.endpoint(request),
                params=self.query_params(request),
                json=self.build_payload(request),
            )
        if response.is_error:
            raise UpstreamError(extract_error_message(response), response.status_code)
        try:
            data = response.json()
        except ValueError as exc:
            raise ParseError(f"Non-JSON response from {self.provider_name}") from exc
        return self._parse(data)

    async def stream_completion(self, request: ProviderRequest) -> AsyncIterator[StreamChunk]:
        with upstream_errors():
            async with self._client.stream(
                "POST",
                self.endpoint(request),
                params=self.query_params(request),
                json=self.build_payload(request),
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise UpstreamError(extract_error_message(response), response.status_code)
                async for payload in iter_sse_data(response):
                    if payload == "[DONE]":
                        break
                    if not payload:
                        continue
                    chunk = self._parse_event(payload)
                    if chunk is not None:
                        yield chunk

    async def close(self) -> None:
        await self._client.aclose()
