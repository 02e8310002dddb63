from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, SmallInteger, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Question(Base):
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE','DISABLED')",
            name="ck_questions_status",
        ),
        Index("idx_questions_speciality_year_status", "speciality", "study_year", "status"),
        Index("idx_questions_unit", "unit_id"),
        Index("idx_questions_module", "module_id"),
        Index("idx_questions_course", "course_id"),
    )

    question_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    options: Mapped[list[str]] = mapped_column(JSONB, nullable=False)
    correct_answer: Mapped[list[int]] = mapped_column(JSONB, nullable=False)
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)
    speciality: Mapped[str | None] = mapped_column(String(32), nullable=True)
    study_year: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    university: Mapped[str | None] = mapped_column(String(128), nullable=True)
    unit_id: Mapped[str | None] = mapped_column(String(64), ForeignKey("units.id"), nullable=True)
    module_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("modules.id"), nullable=True
    )
    course_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("courses.id"), nullable=True
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
