import enum
from decimal import Decimal

from sqlalchemy import JSON, BigInteger, Boolean, Float, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin, UUIDMixin


class UnifiedFinishReason(str, enum.Enum):
    COMPLETED = "completed"
    LENGTH_LIMIT = "length_limit"
    CONTENT_FILTER = "content_filter"
    GATEWAY_ERROR = "gateway_error"
    UPSTREAM_ERROR = "upstream_error"
    CANCELED = "canceled"
    UNKNOWN = "unknown"


class ActivityLog(UUIDMixin, TimestampMixin, Base):
    """One row per completed gateway request, success or failure. Append-only."""
    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("ix_activity_logs_project_created", "project_id", "created_at"),
        Index("ix_activity_logs_organization_id", "organization_id"),
        Index("ix_activity_logs_request_id", "request_id"),
    )

    request_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    api_key_id: Mapped[str] = mapped_column(String(64), nullable=False)

    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    requested_model: Mapped[str] = mapped_column(String(128), nullable=False)
    requested_provider: Mapped[str | None] = mapped_column(String(64), nullable=True)
    used_model: Mapped[str] = mapped_column(String(128), nullable=False)
    used_provider: Mapped[str] = mapped_column(String(64), nullable=False)
    response_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    finish_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    unified_finish_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Null when neither the upstream nor the estimator could produce a count
    prompt_tokens: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    completion_tokens: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    total_tokens: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    messages: Mapped[list] = mapped_column(JSON, nullable=False)
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)
    max_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    top_p: Mapped[float | None] = mapped_column(Float, nullable=True)
    frequency_penalty: Mapped[float | None] = mapped_column(Float, nullable=True)
    presence_penalty: Mapped[float | None] = mapped_column(Float, nullable=True)

    has_error: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    error_details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    # USD, unrounded. Null when cost is unknowable.
    cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 12), nullable=True)
    input_cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 12), nullable=True)
    output_cost: Mapped[Decimal | None] = mapped_column(Numeric(24, 12), nullable=True)
    estimated_cost: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    canceled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    streamed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
