from decimal import Decimal

import pytest
from sqlalchemy import func, select

from app.logs.models import ActivityLog, UnifiedFinishReason
from app.logs.schemas import ActivityLogEntry, ErrorDetails
from app.logs.service import LogWriter, get_unified_finish_reason, insert_log


def make_entry(**overrides) -> ActivityLogEntry:
    fields = dict(
        request_id="req-1",
        organization_id="org-1",
        project_id="proj-1",
        api_key_id="key-1",
        duration_ms=12,
        requested_model="gpt-4o-mini",
        used_model="gpt-4o-mini",
        used_provider="openai",
        content="Hi!",
        finish_reason="stop",
        prompt_tokens=10,
        completion_tokens=2,
        total_tokens=12,
        messages=[{"role": "user", "content": "Hello"}],
        cost=Decimal("0.0000027"),
        input_cost=Decimal("0.0000015"),
        output_cost=Decimal("0.0000012"),
    )
    fields.update(overrides)
    return ActivityLogEntry(**fields)


@pytest.mark.parametrize(
    "finish_reason, provider, expected",
    [
        ("stop", "openai", UnifiedFinishReason.COMPLETED),
        ("length", "kluster.ai", UnifiedFinishReason.LENGTH_LIMIT),
        ("content_filter", "mock", UnifiedFinishReason.CONTENT_FILTER),
        ("end_turn", "anthropic", UnifiedFinishReason.COMPLETED),
        ("max_tokens", "anthropic", UnifiedFinishReason.LENGTH_LIMIT),
        ("MAX_TOKENS", "google-vertex", UnifiedFinishReason.LENGTH_LIMIT),
        ("SAFETY", "google-ai-studio", UnifiedFinishReason.CONTENT_FILTER),
        ("canceled", "openai", UnifiedFinishReason.CANCELED),
        ("gateway_error", "unknown", UnifiedFinishReason.GATEWAY_ERROR),
        ("upstream_error", "anthropic", UnifiedFinishReason.UPSTREAM_ERROR),
        ("something_new", "openai", UnifiedFinishReason.UNKNOWN),
        (None, "openai", UnifiedFinishReason.UNKNOWN),
    ],
)
def test_unified_finish_reason(finish_reason, provider, expected):
    assert get_unified_finish_reason(finish_reason, provider) == expected


@pytest.mark.asyncio
async def test_insert_log_fills_unified_reason(db):
    row = await insert_log(db, make_entry(
        used_model="claude-3-haiku",
        used_provider="anthropic",
        finish_reason="max_tokens",
    ))
    await db.commit()

    stored = (await db.execute(select(ActivityLog).where(ActivityLog.id == row.id))).scalar_one()
    assert stored.unified_finish_reason == "length_limit"
    assert stored.cost == Decimal("0.0000027")
    assert stored.messages == [{"role": "user", "content": "Hello"}]
    assert stored.has_error is False


@pytest.mark.asyncio
async def test_insert_log_keeps_error_details_and_null_costs(db):
    row = await insert_log(db, make_entry(
        content=None,
        finish_reason="upstream_error",
        prompt_tokens=None,
        completion_tokens=None,
        total_tokens=None,
        cost=None,
        input_cost=None,
        output_cost=None,
        has_error=True,
        error_details=ErrorDetails(
            kind="upstream_error", status_code=502, message="boom", upstream_status=500
        ),
    ))
    await db.commit()

    stored = (await db.execute(select(ActivityLog).where(ActivityLog.id == row.id))).scalar_one()
    assert stored.unified_finish_reason == "upstream_error"
    assert stored.cost is None
    assert stored.prompt_tokens is None
    assert stored.error_details["upstream_status"] == 500


@pytest.mark.asyncio
async def test_log_writer_persists_in_background(session_factory):
    writer = LogWriter(session_factory)
    writer.submit(make_entry(request_id="req-a"))
    await writer.drain()
    writer.submit(make_entry(request_id="req-b"))
    await writer.drain()

    async with session_factory() as db:
        count = (await db.execute(select(func.count()).select_from(ActivityLog))).scalar_one()
    assert count == 2


class BrokenSession:
    async def __aenter__(self):
        raise RuntimeError("database is down")

    async def __aexit__(self, *exc_info):
        return False


@pytest.mark.asyncio
async def test_log_writer_swallows_storage_failures():
    writer = LogWriter(BrokenSession)
    writer.submit(make_entry())
    await writer.drain()


@pytest.mark.asyncio
async def test_disabled_log_writer_skips_storage(session_factory):
    writer = LogWriter(session_factory, enabled=False)
    writer.submit(make_entry())
    await writer.drain()

    async with session_factory() as db:
        count = (await db.execute(select(func.count()).select_from(ActivityLog))).scalar_one()
    assert count == 0
