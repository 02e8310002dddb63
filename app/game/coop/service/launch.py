from __future__ import annotations

import secrets
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.game.coop.constants import (
    DEFAULT_QUESTION_COUNT,
    LEVEL_QUESTION_COUNTS,
    MAX_QUESTION_COUNT,
    STATUS_IN_PROGRESS,
)
from app.game.coop.errors import NoQuestionsAvailableError, NotAllReadyError
from app.game.coop.sampler import QuestionSampler
from app.game.coop.state import all_ready, transition
from app.game.coop.types import LaunchResult, QuestionFilter

from .internal import (
    build_session_view,
    ensure_active,
    ensure_participant,
    load_question_views,
    load_session_for_update,
)

logger = structlog.get_logger(__name__)


def resolve_question_count(*, question_count: int | None, level: str | None) -> int:
    if question_count is not None:
        return int(question_count)
    if level is not None and level in LEVEL_QUESTION_COUNTS:
        return min(MAX_QUESTION_COUNT, LEVEL_QUESTION_COUNTS[level])
    return DEFAULT_QUESTION_COUNT


async def launch_coop_session(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    sampler: QuestionSampler,
    now_utc: datetime,
) -> LaunchResult:
    coop_session = await load_session_for_update(session, session_id=session_id)
    ensure_participant(coop_session, user_id=user_id)

    if coop_session.status == STATUS_IN_PROGRESS and coop_session.question_ids:
        questions = await load_question_views(session, question_ids=coop_session.question_ids)
        return LaunchResult(
            session=build_session_view(coop_session),
            questions=questions,
            idempotent_replay=True,
        )

    ensure_active(coop_session, now_utc=now_utc)
    if not all_ready(coop_session):
        raise NotAllReadyError

    count = resolve_question_count(
        question_count=coop_session.question_count,
        level=coop_session.level,
    )
    seed = secrets.token_hex(8)
    question_ids = await sampler.sample(
        session,
        question_filter=QuestionFilter.from_mapping(coop_session.filters),
        count=count,
        seed=seed,
    )
    if not question_ids:
        raise NoQuestionsAvailableError

    coop_session.question_ids = list(question_ids)
    coop_session.seed = seed
    coop_session.started_at = now_utc
    transition(coop_session, STATUS_IN_PROGRESS, now_utc=now_utc)
    logger.info(
        "coop_session_launched",
        session_id=str(coop_session.id),
        launched_by_user_id=int(user_id),
        question_count=len(question_ids),
        requested_count=count,
    )
    questions = await load_question_views(session, question_ids=coop_session.question_ids)
    return LaunchResult(session=build_session_view(coop_session), questions=questions)
