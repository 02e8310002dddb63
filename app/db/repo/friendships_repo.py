from __future__ import annotations

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.friendships import Friendship


class FriendshipsRepo:
    @staticmethod
    async def are_friends(session: AsyncSession, *, user_id: int, other_user_id: int) -> bool:
        stmt = select(
            exists().where(
                Friendship.status == "ACCEPTED",
                or_(
                    and_(
                        Friendship.requester_user_id == user_id,
                        Friendship.recipient_user_id == other_user_id,
                    ),
                    and_(
                        Friendship.requester_user_id == other_user_id,
                        Friendship.recipient_user_id == user_id,
                    ),
                ),
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar())
