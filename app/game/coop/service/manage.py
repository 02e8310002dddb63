from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.repo.users_repo import UsersRepo
from app.game.coop.constants import (
    CORRECTION_MODES,
    LEVEL_QUESTION_COUNTS,
    STATUS_CANCELLED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_READY,
)
from app.game.coop.errors import (
    InvalidFiltersError,
    NotInitiatorError,
    SessionInactiveError,
    SessionNotEditableError,
    SessionNotFoundError,
)
from app.game.coop.sampler import validate_count
from app.game.coop.state import (
    all_ready,
    expire_if_due,
    participant_key,
    results_complete,
    set_pre_launch_status,
    transition,
)
from app.game.coop.types import CoopSessionView, QuestionFilter

from .internal import build_session_view, ensure_active, ensure_participant, load_session_for_update

logger = structlog.get_logger(__name__)


async def set_coop_filters(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    now_utc: datetime,
    filters: Mapping[str, Any] | None = None,
    correction_mode: str | None = None,
    level: str | None = None,
    count: int | None = None,
) -> CoopSessionView:
    if correction_mode is not None and correction_mode not in CORRECTION_MODES:
        raise InvalidFiltersError("Unknown correction mode.")
    if level is not None and level not in LEVEL_QUESTION_COUNTS:
        raise InvalidFiltersError("Unknown level.")
    resolved_count = validate_count(count) if count is not None else None
    requested_filter = QuestionFilter.from_mapping(filters) if filters is not None else None

    coop_session = await load_session_for_update(session, session_id=session_id)
    ensure_participant(coop_session, user_id=user_id)
    if int(coop_session.initiator_user_id) != int(user_id):
        raise NotInitiatorError
    if coop_session.status == STATUS_IN_PROGRESS:
        raise SessionNotEditableError
    ensure_active(coop_session, now_utc=now_utc)

    question_filter = (
        requested_filter
        if requested_filter is not None
        else QuestionFilter.from_mapping(coop_session.filters)
    )
    initiator = await UsersRepo.get_by_id(session, int(coop_session.initiator_user_id))
    if initiator is not None:
        question_filter = question_filter.with_profile_defaults(
            speciality=initiator.speciality,
            study_year=initiator.study_year,
        )

    coop_session.filters = question_filter.as_dict()
    if correction_mode is not None:
        coop_session.correction_mode = correction_mode
    if level is not None:
        coop_session.level = level
    if resolved_count is not None:
        coop_session.question_count = resolved_count
    set_pre_launch_status(coop_session, coop_session.status, now_utc=now_utc)
    logger.info(
        "coop_session_filters_updated",
        session_id=str(coop_session.id),
        correction_mode=coop_session.correction_mode,
        level=coop_session.level,
        question_count=coop_session.question_count,
    )
    return build_session_view(coop_session)


async def set_coop_readiness(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    ready: bool,
    now_utc: datetime,
) -> CoopSessionView:
    coop_session = await load_session_for_update(session, session_id=session_id)
    ensure_participant(coop_session, user_id=user_id)
    ensure_active(coop_session, now_utc=now_utc)
    if coop_session.status == STATUS_IN_PROGRESS:
        raise SessionNotEditableError

    coop_session.readiness = {
        **(coop_session.readiness or {}),
        participant_key(user_id): bool(ready),
    }
    target = STATUS_READY if all_ready(coop_session) else STATUS_PENDING
    set_pre_launch_status(coop_session, target, now_utc=now_utc)
    logger.info(
        "coop_session_readiness_updated",
        session_id=str(coop_session.id),
        user_id=int(user_id),
        ready=bool(ready),
        status=coop_session.status,
    )
    return build_session_view(coop_session)


async def cancel_coop_session(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> tuple[CoopSessionView, bool]:
    coop_session = await load_session_for_update(session, session_id=session_id)
    ensure_participant(coop_session, user_id=user_id)
    if coop_session.status == STATUS_CANCELLED:
        return build_session_view(coop_session), False
    ensure_active(coop_session, now_utc=now_utc)
    if coop_session.status == STATUS_IN_PROGRESS and results_complete(coop_session):
        raise SessionInactiveError

    transition(coop_session, STATUS_CANCELLED, now_utc=now_utc)
    logger.info(
        "coop_session_cancelled",
        session_id=str(coop_session.id),
        cancelled_by_user_id=int(user_id),
    )
    return build_session_view(coop_session), True


async def get_coop_session(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    now_utc: datetime,
) -> CoopSessionView:
    coop_session = await CoopSessionsRepo.get_by_id(session, session_id)
    if coop_session is None:
        raise SessionNotFoundError
    ensure_participant(coop_session, user_id=user_id)
    if expire_if_due(coop_session, now_utc=now_utc):
        logger.info("coop_session_expired_lazily", session_id=str(coop_session.id))
    return build_session_view(coop_session)
