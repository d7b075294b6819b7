"""Activity logs

Revision ID: 001
Revises:
Create Date: 2025-06-01
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("request_id", sa.String(64), nullable=False),
        sa.Column("organization_id", sa.String(64), nullable=False),
        sa.Column("project_id", sa.String(64), nullable=False),
        sa.Column("api_key_id", sa.String(64), nullable=False),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("requested_model", sa.String(128), nullable=False),
        sa.Column("requested_provider", sa.String(64), nullable=True),
        sa.Column("used_model", sa.String(128), nullable=False),
        sa.Column("used_provider", sa.String(64), nullable=False),
        sa.Column("response_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("finish_reason", sa.String(64), nullable=True),
        sa.Column("unified_finish_reason", sa.String(32), nullable=True),
        sa.Column("prompt_tokens", sa.BigInteger(), nullable=True),
        sa.Column("completion_tokens", sa.BigInteger(), nullable=True),
        sa.Column("total_tokens", sa.BigInteger(), nullable=True),
        sa.Column("messages", sa.JSON(), nullable=False),
        sa.Column("temperature", sa.Float(), nullable=True),
        sa.Column("max_tokens", sa.Integer(), nullable=True),
        sa.Column("top_p", sa.Float(), nullable=True),
        sa.Column("frequency_penalty", sa.Float(), nullable=True),
        sa.Column("presence_penalty", sa.Float(), nullable=True),
        sa.Column("has_error", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error_details", sa.JSON(), nullable=True),
        sa.Column("cost", sa.Numeric(24, 12), nullable=True),
        sa.Column("input_cost", sa.Numeric(24, 12), nullable=True),
        sa.Column("output_cost", sa.Numeric(24, 12), nullable=True),
        sa.Column("estimated_cost", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("canceled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("streamed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_activity_logs_project_created", "activity_logs", ["project_id", "created_at"]
    )
    op.create_index("ix_activity_logs_organization_id", "activity_logs", ["organization_id"])
    op.create_index("ix_activity_logs_request_id", "activity_logs", ["request_id"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_request_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_organization_id", table_name="activity_logs")
    op.drop_index("ix_activity_logs_project_created", table_name="activity_logs")
    op.drop_table("activity_logs")
