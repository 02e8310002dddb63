"""coop_sessions_foundation

Revision ID: 5c1e2f3a4b60
Revises:
Create Date: 2026-10-18 09:30:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e2f3a4b60"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("speciality", sa.String(32), nullable=True),
        sa.Column("study_year", sa.SmallInteger(), nullable=True),
        sa.Column("university", sa.String(128), nullable=True),
        sa.Column("push_token", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('ACTIVE','BLOCKED','DELETED')", name="ck_users_status"),
    )
    op.create_index("idx_users_created_at", "users", ["created_at"])
    op.create_index("idx_users_last_seen", "users", ["last_seen_at"])

    op.create_table(
        "friendships",
        sa.Column("id", sa.BigInteger(), primary_key=True),
        sa.Column("requester_user_id", sa.BigInteger(), nullable=False),
        sa.Column("recipient_user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('PENDING','ACCEPTED','DECLINED')", name="ck_friendships_status"),
        sa.CheckConstraint(
            "requester_user_id <> recipient_user_id",
            name="ck_friendships_distinct_users",
        ),
        sa.ForeignKeyConstraint(["requester_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["recipient_user_id"], ["users.id"]),
        sa.UniqueConstraint(
            "requester_user_id",
            "recipient_user_id",
            name="uq_friendships_requester_recipient",
        ),
    )
    op.create_index(
        "idx_friendships_recipient_status",
        "friendships",
        ["recipient_user_id", "status"],
    )

    op.create_table(
        "units",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
    )
    op.create_table(
        "modules",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("unit_id", sa.String(64), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
    )
    op.create_table(
        "courses",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("module_id", sa.String(64), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"]),
    )

    op.create_table(
        "questions",
        sa.Column("question_id", sa.String(64), primary_key=True),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("options", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("correct_answer", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("speciality", sa.String(32), nullable=True),
        sa.Column("study_year", sa.SmallInteger(), nullable=True),
        sa.Column("university", sa.String(128), nullable=True),
        sa.Column("unit_id", sa.String(64), nullable=True),
        sa.Column("module_id", sa.String(64), nullable=True),
        sa.Column("course_id", sa.String(64), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('ACTIVE','DISABLED')", name="ck_questions_status"),
        sa.ForeignKeyConstraint(["unit_id"], ["units.id"]),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"]),
        sa.ForeignKeyConstraint(["course_id"], ["courses.id"]),
    )
    op.create_index(
        "idx_questions_speciality_year_status",
        "questions",
        ["speciality", "study_year", "status"],
    )
    op.create_index("idx_questions_unit", "questions", ["unit_id"])
    op.create_index("idx_questions_module", "questions", ["module_id"])
    op.create_index("idx_questions_course", "questions", ["course_id"])

    op.create_table(
        "coop_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("initiator_user_id", sa.BigInteger(), nullable=False),
        sa.Column("partner_user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("readiness", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("filters", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("question_count", sa.Integer(), nullable=True),
        sa.Column("correction_mode", sa.String(16), nullable=False),
        sa.Column("level", sa.String(16), nullable=True),
        sa.Column("question_ids", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("seed", sa.String(64), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("server_duration_ms", sa.BigInteger(), nullable=True),
        sa.Column("submitted_by", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("results", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("winner_user_id", sa.BigInteger(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending','ready','in_progress','cancelled','expired')",
            name="ck_coop_sessions_status",
        ),
        sa.CheckConstraint(
            "correction_mode IN ('positive','standard','binary')",
            name="ck_coop_sessions_correction_mode",
        ),
        sa.CheckConstraint(
            "level IS NULL OR level IN ('facile','moyen','difficile')",
            name="ck_coop_sessions_level",
        ),
        sa.CheckConstraint(
            "initiator_user_id <> partner_user_id",
            name="ck_coop_sessions_distinct_participants",
        ),
        sa.CheckConstraint(
            "question_count IS NULL OR question_count BETWEEN 5 AND 50",
            name="ck_coop_sessions_question_count_range",
        ),
        sa.CheckConstraint("version >= 0", name="ck_coop_sessions_version_non_negative"),
        sa.ForeignKeyConstraint(["initiator_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["partner_user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["winner_user_id"], ["users.id"]),
    )
    op.create_index(
        "idx_coop_sessions_initiator_status",
        "coop_sessions",
        ["initiator_user_id", "status"],
    )
    op.create_index(
        "idx_coop_sessions_partner_status",
        "coop_sessions",
        ["partner_user_id", "status"],
    )
    op.create_index("idx_coop_sessions_status_updated", "coop_sessions", ["status", "updated_at"])
    op.create_index("idx_coop_sessions_status_expires", "coop_sessions", ["status", "expires_at"])
    op.create_index(
        "uq_coop_sessions_live_pair",
        "coop_sessions",
        [
            sa.text("least(initiator_user_id, partner_user_id)"),
            sa.text("greatest(initiator_user_id, partner_user_id)"),
        ],
        unique=True,
        postgresql_where=sa.text("status IN ('pending','ready','in_progress')"),
    )

    op.create_table(
        "coop_answers",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("question_id", sa.String(64), nullable=False),
        sa.Column("selected", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_duration_ms", sa.BigInteger(), nullable=True),
        sa.ForeignKeyConstraint(["session_id"], ["coop_sessions.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
    )
    op.create_index("idx_coop_answers_session_user", "coop_answers", ["session_id", "user_id"])
    op.create_index("idx_coop_answers_user_submitted", "coop_answers", ["user_id", "submitted_at"])


def downgrade() -> None:
    op.drop_index("idx_coop_answers_user_submitted", table_name="coop_answers")
    op.drop_index("idx_coop_answers_session_user", table_name="coop_answers")
    op.drop_table("coop_answers")

    op.drop_index("uq_coop_sessions_live_pair", table_name="coop_sessions")
    op.drop_index("idx_coop_sessions_status_expires", table_name="coop_sessions")
    op.drop_index("idx_coop_sessions_status_updated", table_name="coop_sessions")
    op.drop_index("idx_coop_sessions_partner_status", table_name="coop_sessions")
    op.drop_index("idx_coop_sessions_initiator_status", table_name="coop_sessions")
    op.drop_table("coop_sessions")

    op.drop_index("idx_questions_course", table_name="questions")
    op.drop_index("idx_questions_module", table_name="questions")
    op.drop_index("idx_questions_unit", table_name="questions")
    op.drop_index("idx_questions_speciality_year_status", table_name="questions")
    op.drop_table("questions")
    op.drop_table("courses")
    op.drop_table("modules")
    op.drop_table("units")

    op.drop_index("idx_friendships_recipient_status", table_name="friendships")
    op.drop_table("friendships")

    op.drop_index("idx_users_last_seen", table_name="users")
    op.drop_index("idx_users_created_at", table_name="users")
    op.drop_table("users")
