from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class CoopSession(Base):
    __tablename__ = "coop_sessions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','ready','in_progress','cancelled','expired')",
            name="ck_coop_sessions_status",
        ),
        CheckConstraint(
            "correction_mode IN ('positive','standard','binary')",
            name="ck_coop_sessions_correction_mode",
        ),
        CheckConstraint(
            "level IS NULL OR level IN ('facile','moyen','difficile')",
            name="ck_coop_sessions_level",
        ),
        CheckConstraint(
            "initiator_user_id <> partner_user_id",
            name="ck_coop_sessions_distinct_participants",
        ),
        CheckConstraint(
            "question_count IS NULL OR question_count BETWEEN 5 AND 50",
            name="ck_coop_sessions_question_count_range",
        ),
        CheckConstraint("version >= 0", name="ck_coop_sessions_version_non_negative"),
        Index("idx_coop_sessions_initiator_status", "initiator_user_id", "status"),
        Index("idx_coop_sessions_partner_status", "partner_user_id", "status"),
        Index("idx_coop_sessions_status_updated", "status", "updated_at"),
        Index("idx_coop_sessions_status_expires", "status", "expires_at"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    initiator_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    partner_user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    readiness: Mapped[dict[str, bool]] = mapped_column(JSONB, nullable=False)
    filters: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    question_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    correction_mode: Mapped[str] = mapped_column(String(16), nullable=False)
    level: Mapped[str | None] = mapped_column(String(16), nullable=True)
    question_ids: Mapped[list[str]] = mapped_column(JSONB, nullable=False)
    seed: Mapped[str | None] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    server_duration_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    submitted_by: Mapped[list[str]] = mapped_column(JSONB, nullable=False)
    results: Mapped[dict[str, dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    winner_user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index(
    "uq_coop_sessions_live_pair",
    func.least(CoopSession.initiator_user_id, CoopSession.partner_user_id),
    func.greatest(CoopSession.initiator_user_id, CoopSession.partner_user_id),
    unique=True,
    postgresql_where=CoopSession.status.in_(("pending", "ready", "in_progress")),
)
