"""Initial schema — the five GenBridge SG tables.

Revision ID: 001_initial
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── 1. profiles ─────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            comment="Identity-provider user id (owner)",
        ),
        sa.Column("full_name", sa.String(100), nullable=True),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("location", sa.String(100), nullable=True),
        sa.Column("age_group", sa.String, nullable=True),
        sa.Column("avatar_url", sa.String, nullable=True),
        sa.Column(
            "phone_number_encrypted",
            sa.Text,
            nullable=True,
            comment="Fernet token of the SG phone number",
        ),
        sa.Column(
            "skills_offered",
            postgresql.ARRAY(sa.String),
            server_default="{}",
            nullable=False,
        ),
        sa.Column(
            "skills_wanted",
            postgresql.ARRAY(sa.String),
            server_default="{}",
            nullable=False,
        ),
        sa.Column(
            "skills_proficiency",
            postgresql.JSONB,
            nullable=True,
            comment="skill -> beginner/intermediate/advanced/expert",
        ),
        sa.Column("credibility_score", sa.Integer, server_default="0", nullable=True),
        sa.Column("credits", sa.Integer, server_default="0", nullable=False),
        sa.Column(
            "skill_exchange_duration",
            sa.String,
            nullable=True,
            comment="30 / 60 / 90 / 120 minutes",
        ),
        sa.Column(
            "preferred_language",
            sa.String,
            server_default="en",
            nullable=False,
        ),
        sa.Column(
            "joining_reason",
            sa.Text,
            nullable=True,
            comment="Questionnaire answer; marks onboarding done",
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "credibility_score IS NULL OR (credibility_score BETWEEN 0 AND 100)",
            name="ck_profiles_credibility_range",
        ),
        sa.CheckConstraint("credits >= 0", name="ck_profiles_credits_non_negative"),
    )
    op.create_index("ix_profiles_user_id", "profiles", ["user_id"], unique=True)

    # ── 2. user_roles ───────────────────────────────────────────────
    op.create_table(
        "user_roles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "role",
            sa.String,
            nullable=False,
            comment="admin / moderator / user",
        ),
        sa.UniqueConstraint("user_id", "role", name="uq_user_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    # ── 3. conversations ────────────────────────────────────────────
    op.create_table(
        "conversations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("participant_one", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("participant_two", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "participant_one <> participant_two",
            name="ck_conversations_distinct_participants",
        ),
    )
    op.create_index("ix_conversations_participant_one", "conversations", ["participant_one"])
    op.create_index("ix_conversations_participant_two", "conversations", ["participant_two"])
    # One conversation per unordered pair.
    op.execute(
        "CREATE UNIQUE INDEX uq_conversation_pair ON conversations "
        "(LEAST(participant_one, participant_two), GREATEST(participant_one, participant_two))"
    )

    # ── 4. messages ─────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "conversation_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "char_length(btrim(content)) BETWEEN 1 AND 5000",
            name="ck_messages_content_length",
        ),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index(
        "ix_messages_conversation_created",
        "messages",
        ["conversation_id", "created_at"],
    )

    # ── 5. reports ──────────────────────────────────────────────────
    op.create_table(
        "reports",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("reporter_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reported_user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column(
            "status",
            sa.String,
            server_default="pending",
            nullable=False,
            comment="pending / reviewing / resolved / dismissed",
        ),
        sa.Column("action_taken", sa.Text, nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("ix_reports_reporter_id", "reports", ["reporter_id"])
    op.create_index("ix_reports_reported_user_id", "reports", ["reported_user_id"])
    op.create_index("ix_reports_status", "reports", ["status"])


def downgrade() -> None:
    # Drop in reverse order (children / dependents first).
    op.drop_index("ix_reports_status", table_name="reports")
    op.drop_index("ix_reports_reported_user_id", table_name="reports")
    op.drop_index("ix_reports_reporter_id", table_name="reports")
    op.drop_table("reports")

    op.drop_index("ix_messages_conversation_created", table_name="messages")
    op.drop_index("ix_messages_sender_id", table_name="messages")
    op.drop_index("ix_messages_conversation_id", table_name="messages")
    op.drop_table("messages")

    op.execute("DROP INDEX IF EXISTS uq_conversation_pair")
    op.drop_index("ix_conversations_participant_two", table_name="conversations")
    op.drop_index("ix_conversations_participant_one", table_name="conversations")
    op.drop_table("conversations")

    op.drop_index("ix_user_roles_user_id", table_name="user_roles")
    op.drop_table("user_roles")

    op.drop_index("ix_profiles_user_id", table_name="profiles")
    op.drop_table("profiles")
