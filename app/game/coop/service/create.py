from __future__ import annotations

from datetime import datetime
from uuid import uuid4

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coop_sessions import CoopSession
from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.repo.friendships_repo import FriendshipsRepo
from app.game.coop.constants import DEFAULT_CORRECTION_MODE, STATUS_PENDING
from app.game.coop.errors import AlreadyActiveSessionError, NotFriendsError, SelfTargetError
from app.game.coop.state import (
    expire_if_due,
    expires_at_for,
    initial_readiness,
    set_pre_launch_status,
)
from app.game.coop.types import CreateSessionResult

from .internal import build_session_view

logger = structlog.get_logger(__name__)


def _new_pending_session(
    *,
    initiator_user_id: int,
    friend_user_id: int,
    now_utc: datetime,
) -> CoopSession:
    return CoopSession(
        id=uuid4(),
        initiator_user_id=int(initiator_user_id),
        partner_user_id=int(friend_user_id),
        status=STATUS_PENDING,
        readiness=initial_readiness(initiator_user_id, friend_user_id),
        filters={},
        question_count=None,
        correction_mode=DEFAULT_CORRECTION_MODE,
        level=None,
        question_ids=[],
        seed=None,
        started_at=None,
        server_duration_ms=None,
        submitted_by=[],
        results={},
        winner_user_id=None,
        version=0,
        expires_at=expires_at_for(STATUS_PENDING, now_utc=now_utc),
        created_at=now_utc,
        updated_at=now_utc,
    )


async def create_coop_session(
    session: AsyncSession,
    *,
    initiator_user_id: int,
    friend_user_id: int,
    now_utc: datetime,
) -> CreateSessionResult:
    if int(initiator_user_id) == int(friend_user_id):
        raise SelfTargetError
    if not await FriendshipsRepo.are_friends(
        session,
        user_id=initiator_user_id,
        other_user_id=friend_user_id,
    ):
        raise NotFriendsError

    existing = await CoopSessionsRepo.get_pending_for_pair_for_update(
        session,
        user_id=initiator_user_id,
        other_user_id=friend_user_id,
    )
    if existing is not None and not expire_if_due(existing, now_utc=now_utc):
        existing.readiness = initial_readiness(
            existing.initiator_user_id,
            existing.partner_user_id,
        )
        set_pre_launch_status(existing, STATUS_PENDING, now_utc=now_utc)
        logger.info(
            "coop_session_refreshed",
            session_id=str(existing.id),
            initiator_user_id=int(initiator_user_id),
        )
        return CreateSessionResult(session=build_session_view(existing), refreshed=True)

    live_sessions = await CoopSessionsRepo.list_live_for_users(
        session,
        user_ids=[initiator_user_id, friend_user_id],
        now_utc=now_utc,
    )
    if live_sessions:
        raise AlreadyActiveSessionError

    await CoopSessionsRepo.expire_lapsed_for_pair(
        session,
        user_id=initiator_user_id,
        other_user_id=friend_user_id,
        now_utc=now_utc,
    )
    try:
        coop_session = await CoopSessionsRepo.create(
            session,
            coop_session=_new_pending_session(
                initiator_user_id=initiator_user_id,
                friend_user_id=friend_user_id,
                now_utc=now_utc,
            ),
        )
    except IntegrityError as exc:
        raise AlreadyActiveSessionError from exc

    logger.info(
        "coop_session_created",
        session_id=str(coop_session.id),
        initiator_user_id=int(initiator_user_id),
        friend_user_id=int(friend_user_id),
    )
    return CreateSessionResult(session=build_session_view(coop_session))
