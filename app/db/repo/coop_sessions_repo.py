from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coop_sessions import CoopSession

LIVE_STATUSES: tuple[str, ...] = ("pending", "ready", "in_progress")


class CoopSessionsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, session_id: UUID) -> CoopSession | None:
        return await session.get(CoopSession, session_id)

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, session_id: UUID) -> CoopSession | None:
        stmt = select(CoopSession).where(CoopSession.id == session_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(session: AsyncSession, *, coop_session: CoopSession) -> CoopSession:
        session.add(coop_session)
        await session.flush()
        return coop_session

    @staticmethod
    async def get_pending_for_pair_for_update(
        session: AsyncSession,
        *,
        user_id: int,
        other_user_id: int,
    ) -> CoopSession | None:
        stmt = (
            select(CoopSession)
            .where(
                CoopSession.status == "pending",
                or_(
                    and_(
                        CoopSession.initiator_user_id == user_id,
                        CoopSession.partner_user_id == other_user_id,
                    ),
                    and_(
                        CoopSession.initiator_user_id == other_user_id,
                        CoopSession.partner_user_id == user_id,
                    ),
                ),
            )
            .order_by(CoopSession.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def expire_lapsed_for_pair(
        session: AsyncSession,
        *,
        user_id: int,
        other_user_id: int,
        now_utc: datetime,
    ) -> int:
        stmt = (
            update(CoopSession)
            .where(
                CoopSession.status.in_(("pending", "ready")),
                CoopSession.expires_at <= now_utc,
                or_(
                    and_(
                        CoopSession.initiator_user_id == user_id,
                        CoopSession.partner_user_id == other_user_id,
                    ),
                    and_(
                        CoopSession.initiator_user_id == other_user_id,
                        CoopSession.partner_user_id == user_id,
                    ),
                ),
            )
            .values(status="expired", updated_at=now_utc)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return int(result.rowcount or 0)

    @staticmethod
    async def list_live_for_users(
        session: AsyncSession,
        *,
        user_ids: Sequence[int],
        now_utc: datetime,
    ) -> list[CoopSession]:
        ids = tuple({int(user_id) for user_id in user_ids})
        if not ids:
            return []
        stmt = (
            select(CoopSession)
            .where(
                CoopSession.status.in_(LIVE_STATUSES),
                CoopSession.expires_at > now_utc,
                or_(
                    CoopSession.initiator_user_id.in_(ids),
                    CoopSession.partner_user_id.in_(ids),
                ),
            )
            .order_by(CoopSession.created_at.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def claim_submission(
        session: AsyncSession,
        *,
        coop_session: CoopSession,
        participant_key: str,
        expected_version: int,
        now_utc: datetime,
    ) -> bool:
        submitted_by = [*coop_session.submitted_by, participant_key]
        stmt = (
            update(CoopSession)
            .where(
                CoopSession.id == coop_session.id,
                CoopSession.status == "in_progress",
                CoopSession.version == expected_version,
            )
            .values(
                submitted_by=submitted_by,
                version=CoopSession.version + 1,
                updated_at=now_utc,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        claimed = (result.rowcount or 0) == 1
        await session.refresh(coop_session)
        return claimed

    @staticmethod
    async def list_stale_in_progress_for_update(
        session: AsyncSession,
        *,
        updated_before_utc: datetime,
        limit: int,
    ) -> list[CoopSession]:
        resolved_limit = max(1, int(limit))
        stmt = (
            select(CoopSession)
            .where(
                CoopSession.status == "in_progress",
                CoopSession.updated_at <= updated_before_utc,
            )
            .order_by(CoopSession.updated_at.asc())
            .limit(resolved_limit)
            .with_for_update(skip_locked=True)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
