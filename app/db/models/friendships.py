from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.models.base import Base


class Friendship(Base):
    __tablename__ = "friendships"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING','ACCEPTED','DECLINED')",
            name="ck_friendships_status",
        ),
        CheckConstraint(
            "requester_user_id <> recipient_user_id",
            name="ck_friendships_distinct_users",
        ),
        UniqueConstraint(
            "requester_user_id",
            "recipient_user_id",
            name="uq_friendships_requester_recipient",
        ),
        Index("idx_friendships_recipient_status", "recipient_user_id", "status"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    requester_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    recipient_user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
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
