"""Activity log service: append-only, written off the request path."""
import asyncio
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.logs.models import ActivityLog, UnifiedFinishReason
from app.logs.schemas import ActivityLogEntry

logger = structlog.get_logger(__name__)

_PROVIDER_FINISH_REASONS: dict[str, dict[str, UnifiedFinishReason]] = {
    "anthropic": {
        "stop_sequence": UnifiedFinishReason.COMPLETED,
        "end_turn": UnifiedFinishReason.COMPLETED,
        "max_tokens": UnifiedFinishReason.LENGTH_LIMIT,
    },
    "google-vertex": {
        "STOP": UnifiedFinishReason.COMPLETED,
        "MAX_TOKENS": UnifiedFinishReason.LENGTH_LIMIT,
        "SAFETY": UnifiedFinishReason.CONTENT_FILTER,
    },
    "google-ai-studio": {
        "STOP": UnifiedFinishReason.COMPLETED,
        "MAX_TOKENS": UnifiedFinishReason.LENGTH_LIMIT,
        "SAFETY": UnifiedFinishReason.CONTENT_FILTER,
    },
}

# OpenAI format, also spoken by inference.net, kluster.ai and the mock
_OPENAI_FINISH_REASONS = {
    "stop": UnifiedFinishReason.COMPLETED,
    "length": UnifiedFinishReason.LENGTH_LIMIT,
    "content_filter": UnifiedFinishReason.CONTENT_FILTER,
}

_GATEWAY_FINISH_REASONS = {
    "canceled": UnifiedFinishReason.CANCELED,
    "gateway_error": UnifiedFinishReason.GATEWAY_ERROR,
    "upstream_error": UnifiedFinishReason.UPSTREAM_ERROR,
}


def get_unified_finish_reason(
    finish_reason: str | None, provider: str | None
) -> UnifiedFinishReason:
    """Map a provider-specific finish reason onto the unified set."""
    if not finish_reason:
        return UnifiedFinishReason.UNKNOWN
    if finish_reason in _GATEWAY_FINISH_REASONS:
        return _GATEWAY_FINISH_REASONS[finish_reason]
    table = _PROVIDER_FINISH_REASONS.get(provider or "", _OPENAI_FINISH_REASONS)
    return table.get(finish_reason, UnifiedFinishReason.UNKNOWN)


async def insert_log(db: AsyncSession, entry: ActivityLogEntry) -> ActivityLog:
    data = entry.model_dump(mode="python")
    if entry.unified_finish_reason is None:
        data["unified_finish_reason"] = get_unified_finish_reason(
            entry.finish_reason, entry.used_provider
        ).value
    row = ActivityLog(**data)
    db.add(row)
    await db.flush()
    return row


class LogWriter:
    """Fire-and-forget persistence of activity log entries.

    ``submit`` never blocks or raises; write failures are logged and dropped.
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] | None, enabled: bool = True) -> None:
        self._session_factory = session_factory
        self._enabled = enabled and session_factory is not None
        self._tasks: set[asyncio.Task[None]] = set()

    def submit(self, entry: ActivityLogEntry) -> None:
        logger.info(
            "gateway.request.accounted",
            request_id=entry.request_id,
            model=entry.used_model,
            provider=entry.used_provider,
            finish_reason=entry.finish_reason,
            prompt_tokens=entry.prompt_tokens,
            completion_tokens=entry.completion_tokens,
            cost=str(entry.cost) if entry.cost is not None else None,
            duration_ms=entry.duration_ms,
            has_error=entry.has_error,
        )
        if not self._enabled:
            return
        task = asyncio.create_task(self._write(entry))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _write(self, entry: ActivityLogEntry) -> None:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    await insert_log(db, entry)
        except Exception:
            logger.exception("logs.insert_failed", request_id=entry.request_id)

    async def drain(self) -> None:
        """Wait for in-flight writes; used on shutdown and in tests."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
