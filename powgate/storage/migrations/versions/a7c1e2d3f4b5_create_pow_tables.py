"""Create pow_challenges, pow_sessions and pow_rate_limits tables.

Revision ID: a7c1e2d3f4b5
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlmodel.sql.sqltypes import AutoString

# revision identifiers, used by Alembic
revision = "a7c1e2d3f4b5"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "pow_challenges",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("payload", sa.LargeBinary(), nullable=False),
        sa.Column("difficulty_bits", sa.Integer(), nullable=False),
        sa.Column("expires_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("client_fingerprint", sa.LargeBinary(), nullable=False),
        sa.Column("client_ip", AutoString(), nullable=True),
        sa.CheckConstraint(
            "difficulty_bits BETWEEN 1 AND 32", name="ck_pow_challenges_difficulty_bits"
        ),
    )
    op.create_index("ix_pow_challenges_expires_at_ms", "pow_challenges", ["expires_at_ms"])
    op.create_index(
        "ix_pow_challenges_client_fingerprint", "pow_challenges", ["client_fingerprint"]
    )

    op.create_table(
        "pow_sessions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("expires_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("created_at_ms", sa.BigInteger(), nullable=False),
        sa.Column("client_fingerprint", sa.LargeBinary(), nullable=False),
        sa.Column("challenge_id", sa.Uuid(), nullable=False),
    )
    op.create_index("ix_pow_sessions_expires_at_ms", "pow_sessions", ["expires_at_ms"])
    op.create_index("ix_pow_sessions_client_fingerprint", "pow_sessions", ["client_fingerprint"])

    op.create_table(
        "pow_rate_limits",
        sa.Column("client_fingerprint", sa.LargeBinary(), nullable=False),
        sa.Column("window_start_ms", sa.BigInteger(), nullable=False),
        sa.Column("request_count", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("client_fingerprint", "window_start_ms"),
    )
    op.create_index("ix_pow_rate_limits_window_start_ms", "pow_rate_limits", ["window_start_ms"])


def downgrade() -> None:
    op.drop_index("ix_pow_rate_limits_window_start_ms", table_name="pow_rate_limits")
    op.drop_table("pow_rate_limits")
    op.drop_index("ix_pow_sessions_client_fingerprint", table_name="pow_sessions")
    op.drop_index("ix_pow_sessions_expires_at_ms", table_name="pow_sessions")
    op.drop_table("pow_sessions")
    op.drop_index("ix_pow_challenges_client_fingerprint", table_name="pow_challenges")
    op.drop_index("ix_pow_challenges_expires_at_ms", table_name="pow_challenges")
    op.drop_table("pow_challenges")
