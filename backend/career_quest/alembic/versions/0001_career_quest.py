"""Create diagnostic session mirror and career quest progress tables

Revision ID: 0001_career_quest
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_career_quest"
down_revision = None
branch_labels = None
depends_on = None

json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "diagnostic_sessions",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("participant_email", sa.String(length=255), nullable=False),
        sa.Column("participant_full_name", sa.String(length=200), nullable=True),
        sa.Column("participant_first_name", sa.String(length=120), nullable=True),
        sa.Column("participant_whatsapp", sa.String(length=64), nullable=True),
        sa.Column("subscription_status", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("responses", json_type, nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_diagnostic_sessions_participant_email",
        "diagnostic_sessions",
        ["participant_email"],
    )

    op.create_table(
        "career_quest_progress",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("session_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("progress", json_type, nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_career_quest_progress_session_id",
        "career_quest_progress",
        ["session_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_career_quest_progress_session_id", table_name="career_quest_progress")
    op.drop_table("career_quest_progress")
    op.drop_index("ix_diagnostic_sessions_participant_email", table_name="diagnostic_sessions")
    op.drop_table("diagnostic_sessions")
