from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.users import User


class UsersRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, user_id: int) -> User | None:
        return await session.get(User, user_id)

    @staticmethod
    async def get_push_token(session: AsyncSession, user_id: int) -> str | None:
        stmt = select(User.push_token).where(User.id == user_id, User.status == "ACTIVE")
        result = await session.execute(stmt)
        token = result.scalar_one_or_none()
        if token is None or not token.strip():
            return None
        return token.strip()
