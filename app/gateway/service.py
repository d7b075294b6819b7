"""
Chat completion orchestration.

One ChatCompletionCall drives one request through

    Received -> Validated -> Dispatched -> (Streaming | Buffered) -> Accounted -> Completed

with Errored reachable from any non-terminal state. Every outcome after the
request body parses, success or failure, produces exactly one activity log
entry; the entry is handed to the log writer without waiting on storage.
"""
import asyncio
import enum
import json
import time
import uuid
from collections.abc import AsyncIterator, Callable
from typing import Any

import anyio
import structlog
from pydantic import BaseModel

from app.catalog import service as catalog
from app.catalog.models import ModelDefinition, ProviderMapping
from app.core.exceptions import AppError, ProviderUnavailableError, UpstreamError, ValidationError
from app.gateway.schemas import (
    AssistantMessage,
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    Choice,
    ChunkChoice,
    Delta,
    Usage,
)
from app.logs.schemas import ActivityLogEntry, ErrorDetails
from app.logs.service import LogWriter
from app.pricing.schemas import CostBreakdown
from app.pricing.service import calculate_costs
from app.providers.base import BaseProvider, ProviderRequest, ProviderResponse, StreamChunk
from app.tokens.service import FullOutput

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[str], BaseProvider]

SSE_DONE = "data: [DONE]\n\n"


class RequestState(str, enum.Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    BUFFERED = "buffered"
    ACCOUNTED = "accounted"
    COMPLETED = "completed"
    ERRORED = "errored"


TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.ERRORED})


def sse_event(payload: BaseModel | dict[str, Any]) -> str:
    if isinstance(payload, dict):
        body = json.dumps(payload)
    else:
        body = payload.model_dump_json(exclude_none=True)
    return f"data: {body}\n\n"


def error_finish_reason(exc: AppError) -> str:
    if isinstance(exc, UpstreamError):
        return "upstream_error"
    return "gateway_error"


class ChatCompletionCall:
    def __init__(
        self,
        request: ChatCompletionRequest,
        *,
        organization_id: str,
        project_id: str,
        api_key_id: str,
        provider_factory: ProviderFactory,
        log_writer: LogWriter,
    ) -> None:
        self.request = request
        self.organization_id = organization_id
        self.project_id = project_id
        self.api_key_id = api_key_id
        self._provider_factory = provider_factory
        self._log_writer = log_writer

        self.request_id = uuid.uuid4().hex
        self.created = int(time.time())
        self._started = time.monotonic()
        self.state = RequestState.RECEIVED

        self.model_def: ModelDefinition | None = None
        self.mapping: ProviderMapping | None = None
        self.requested_provider: str | None = None
        self._logged = False
        self._log = logger.bind(request_id=self.request_id, requested_model=request.model)

    # ── state ────────────────────────────────────────────────────────────────

    def _transition(self, state: RequestState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"request {self.request_id} already {self.state.value}")
        self._log.debug("gateway.request.state", previous=self.state.value, state=state.value)
        self.state = state

    @property
    def messages(self) -> list[dict[str, Any]]:
        return [m.model_dump(exclude_none=True) for m in self.request.messages]

    @property
    def duration_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    # ── Received -> Validated ────────────────────────────────────────────────

    def validate(self) -> None:
        try:
            self.model_def, self.mapping = catalog.resolve_model(self.request.model)
            if "/" in self.request.model and catalog.find_model(self.request.model) is None:
                self.requested_provider = self.mapping.provider_id
            if self.request.stream and not catalog.mapping_supports_streaming(self.model_def, self.mapping):
                raise ValidationError(
                    f"Model {self.model_def.model} does not support streaming "
                    f"with provider {self.mapping.provider_id}"
                )
        except ValidationError as exc:
            self._fail(exc)
            raise
        self._transition(RequestState.VALIDATED)

    # ── Validated -> Dispatched ──────────────────────────────────────────────

    def _provider_request(self) -> ProviderRequest:
        r = self.request
        return ProviderRequest(
            model=self.model_def.upstream_model_name(self.mapping),
            messages=self.messages,
            stream=r.stream,
            temperature=r.temperature,
            top_p=r.top_p,
            max_tokens=r.max_tokens,
            frequency_penalty=r.frequency_penalty,
            presence_penalty=r.presence_penalty,
        )

    def _dispatch(self) -> BaseProvider:
        provider_id = self.mapping.provider_id
        try:
            provider = self._provider_factory(provider_id)
        except ValueError as exc:
            raise ProviderUnavailableError(
                f"Provider '{provider_id}' is not configured: {exc}"
            ) from exc
        if self.request.stream and not provider.supports_streaming:
            raise ValidationError(f"Provider {provider_id} does not support streaming")
        self._transition(RequestState.DISPATCHED)
        self._log.info("gateway.request.dispatched", provider=provider_id, stream=self.request.stream)
        return provider

    # ── Buffered ─────────────────────────────────────────────────────────────

    async def complete(self) -> dict[str, Any]:
        """Non-streaming path. Returns the OpenAI-shaped response body."""
        try:
            provider = self._dispatch()
            self._transition(RequestState.BUFFERED)
            response = await provider.generate_completion(self._provider_request())
        except AppError as exc:
            self._fail(exc)
            raise
        except asyncio.CancelledError:
            self._account(
                content="",
                prompt_tokens=None,
                completion_tokens=None,
                finish_reason="canceled",
                canceled=True,
            )
            raise

        costs = self._costs(response.prompt_tokens, response.completion_tokens, response.content)
        body = self._response_body(response, costs)
        self._account(
            content=response.content,
            costs=costs,
            finish_reason=response.native_finish_reason or response.finish_reason,
            response_size=len(json.dumps(body)),
        )
        return body

    def _response_body(self, response: ProviderResponse, costs: CostBreakdown) -> dict[str, Any]:
        return ChatCompletionResponse(
            id=f"chatcmpl-{self.request_id}",
            created=self.created,
            model=self.request.model,
            choices=[
                Choice(
                    message=AssistantMessage(content=response.content),
                    finish_reason=response.finish_reason,
                )
            ],
            usage=Usage(
                prompt_tokens=costs.prompt_tokens,
                completion_tokens=costs.completion_tokens,
                total_tokens=costs.total_tokens,
            ),
        ).model_dump()

    # ── Streaming ────────────────────────────────────────────────────────────

    async def open_stream(self) -> AsyncIterator[str]:
        """
        Start the upstream stream and wait for its first event, so that
        connection and HTTP errors surface as a regular error response.
        Returns the SSE relay for the rest of the stream, already started:
        closing it at any point closes the upstream and accounts the request.
        """
        try:
            provider = self._dispatch()
            self._transition(RequestState.STREAMING)
            upstream = provider.stream_completion(self._provider_request())
        except AppError as exc:
            self._fail(exc)
            raise

        try:
            first = await anext(upstream, None)
        except AppError as exc:
            self._fail(exc, streamed=True)
            raise
        except asyncio.CancelledError:
            self._account(content="", finish_reason="canceled", canceled=True, streamed=True)
            with anyio.CancelScope(shield=True):
                await upstream.aclose()
            raise

        relay = self._relay(upstream, first)
        # Runs the relay up to its first suspension point, inside its handlers.
        await anext(relay)
        return relay

    def _chunk(self, delta: Delta | None = None, finish_reason: str | None = None,
               usage: Usage | None = None) -> ChatCompletionChunk:
        choices = []
        if delta is not None or finish_reason is not None:
            choices.append(ChunkChoice(delta=delta or Delta(), finish_reason=finish_reason))
        return ChatCompletionChunk(
            id=f"chatcmpl-{self.request_id}",
            created=self.created,
            model=self.request.model,
            choices=choices,
            usage=usage,
        )

    @staticmethod
    def _usage(prompt_tokens: int | None, completion_tokens: int | None) -> Usage | None:
        if prompt_tokens is None and completion_tokens is None:
            return None
        return Usage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=(
                prompt_tokens + completion_tokens
                if prompt_tokens is not None and completion_tokens is not None
                else None
            ),
        )

    def _events_for(self, chunk: StreamChunk, usage: Usage | None) -> list[str]:
        """SSE events for one upstream chunk. ``usage`` is the running total so far."""
        events = []
        if chunk.role is not None or chunk.content:
            events.append(sse_event(self._chunk(Delta(role=chunk.role, content=chunk.content))))
        # The finish reason always travels in its own chunk, after the last content.
        if chunk.finish_reason is not None:
            events.append(sse_event(self._chunk(Delta(), finish_reason=chunk.finish_reason, usage=usage)))
        elif not events and (chunk.prompt_tokens is not None or chunk.completion_tokens is not None):
            events.append(sse_event(self._chunk(usage=usage)))
        return events

    async def _relay(
        self, upstream: AsyncIterator[StreamChunk], first: StreamChunk | None
    ) -> AsyncIterator[str]:
        parts: list[str] = []
        prompt_tokens: int | None = None
        completion_tokens: int | None = None
        finish_reason: str | None = None
        native_finish_reason: str | None = None
        sent = 0

        try:
            # Consumed by open_stream, never sent.
            yield ""
            chunk = first
            while chunk is not None:
                if chunk.content:
                    parts.append(chunk.content)
                if chunk.prompt_tokens is not None:
                    prompt_tokens = chunk.prompt_tokens
                if chunk.completion_tokens is not None:
                    completion_tokens = chunk.completion_tokens
                if chunk.finish_reason is not None:
                    finish_reason = chunk.finish_reason
                    native_finish_reason = chunk.native_finish_reason or chunk.finish_reason

                for event in self._events_for(chunk, self._usage(prompt_tokens, completion_tokens)):
                    sent += len(event)
                    yield event
                chunk = await anext(upstream, None)
        except AppError as exc:
            self._log.warning("gateway.stream.upstream_failed", error=exc.message)
            self._fail(exc, content="".join(parts), streamed=True)
            yield sse_event({"error": {"message": exc.message, "type": exc.kind}})
            yield SSE_DONE
            return
        except (asyncio.CancelledError, GeneratorExit):
            self._log.info("gateway.stream.canceled", received_chars=sum(len(p) for p in parts))
            self._account(
                content="".join(parts),
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                finish_reason="canceled",
                canceled=True,
                streamed=True,
                response_size=sent,
            )
            raise
        finally:
            with anyio.CancelScope(shield=True):
                await upstream.aclose()

        if finish_reason is None:
            finish_reason = native_finish_reason = "stop"
            event = sse_event(self._chunk(
                Delta(), finish_reason=finish_reason, usage=self._usage(prompt_tokens, completion_tokens)
            ))
            sent += len(event)
            yield event

        self._account(
            content="".join(parts),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=native_finish_reason,
            streamed=True,
            response_size=sent + len(SSE_DONE),
        )
        yield SSE_DONE

    # ── Accounted -> Completed ───────────────────────────────────────────────

    def _costs(
        self, prompt_tokens: int | None, completion_tokens: int | None, content: str | None
    ) -> CostBreakdown:
        return calculate_costs(
            self.model_def.model,
            prompt_tokens,
            completion_tokens,
            FullOutput(messages=self.messages, completion=content or None),
            provider_id=self.mapping.provider_id,
        )

    def _account(
        self,
        *,
        content: str | None,
        finish_reason: str | None,
        costs: CostBreakdown | None = None,
        prompt_tokens: int | None = None,
        completion_tokens: int | None = None,
        canceled: bool = False,
        streamed: bool = False,
        response_size: int = 0,
        error: AppError | None = None,
    ) -> None:
        if self._logged:
            return
        self._logged = True

        if costs is None and self.model_def is not None:
            costs = self._costs(prompt_tokens, completion_tokens, content)
        if costs is None:
            costs = CostBreakdown(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens)

        if error is None:
            self._transition(RequestState.ACCOUNTED)

        r = self.request
        entry = ActivityLogEntry(
            request_id=self.request_id,
            organization_id=self.organization_id,
            project_id=self.project_id,
            api_key_id=self.api_key_id,
            duration_ms=self.duration_ms,
            requested_model=r.model,
            requested_provider=self.requested_provider,
            used_model=self.model_def.model if self.model_def else r.model,
            used_provider=self.mapping.provider_id if self.mapping else "unknown",
            response_size=response_size,
            content=content or None,
            finish_reason=finish_reason,
            prompt_tokens=costs.prompt_tokens,
            completion_tokens=costs.completion_tokens,
            total_tokens=costs.total_tokens,
            messages=self.messages,
            temperature=r.temperature,
            max_tokens=r.max_tokens,
            top_p=r.top_p,
            frequency_penalty=r.frequency_penalty,
            presence_penalty=r.presence_penalty,
            has_error=error is not None,
            error_details=(
                ErrorDetails(
                    kind=error.kind,
                    status_code=error.status_code,
                    message=error.message,
                    upstream_status=getattr(error, "upstream_status", None),
                )
                if error is not None
                else None
            ),
            cost=costs.total_cost,
            input_cost=costs.input_cost,
            output_cost=costs.output_cost,
            estimated_cost=costs.estimated_cost,
            canceled=canceled,
            streamed=streamed,
        )
        self._log_writer.submit(entry)

        if self.state not in TERMINAL_STATES:
            self._transition(RequestState.ERRORED if error is not None or canceled else RequestState.COMPLETED)

    def _fail(self, exc: AppError, content: str | None = None, streamed: bool = False) -> None:
        self._log.warning(
            "gateway.request.failed",
            state=self.state.value,
            error_kind=exc.kind,
            status_code=exc.status_code,
            error=exc.message,
        )
        if isinstance(exc, ValidationError):
            # Nothing was sent upstream, so there is nothing to price.
            self._account(content=None, finish_reason="gateway_error", error=exc,
                          costs=CostBreakdown(), streamed=streamed)
            return
        self._account(
            content=content,
            finish_reason=error_finish_reason(exc),
            error=exc,
            streamed=streamed,
        )
