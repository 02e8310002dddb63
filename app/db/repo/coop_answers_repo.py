from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coop_answers import CoopAnswer


class CoopAnswersRepo:
    @staticmethod
    async def add_many(session: AsyncSession, *, answers: Sequence[CoopAnswer]) -> int:
        if not answers:
            return 0
        session.add_all(list(answers))
        await session.flush()
        return len(answers)

    @staticmethod
    async def list_for_session_user(
        session: AsyncSession,
        *,
        session_id: UUID,
        user_id: int,
    ) -> list[CoopAnswer]:
        stmt = (
            select(CoopAnswer)
            .where(CoopAnswer.session_id == session_id, CoopAnswer.user_id == user_id)
            .order_by(CoopAnswer.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
