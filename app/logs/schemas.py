from decimal import Decimal
from typing import Any

from pydantic import BaseModel


class ErrorDetails(BaseModel):
    kind: str
    status_code: int
    message: str
    upstream_status: int | None = None


class ActivityLogEntry(BaseModel):
    """Accounting record handed to the storage collaborator once per request."""

    request_id: str
    organization_id: str
    project_id: str
    api_key_id: str
    duration_ms: int
    requested_model: str
    requested_provider: str | None = None
    used_model: str
    used_provider: str
    response_size: int = 0
    content: str | None = None
    finish_reason: str | None = None
    unified_finish_reason: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None
    messages: list[dict[str, Any]]
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    has_error: bool = False
    error_details: ErrorDetails | None = None
    cost: Decimal | None = None
    input_cost: Decimal | None = None
    output_cost: Decimal | None = None
    estimated_cost: bool = False
    canceled: bool = False
    streamed: bool = False
