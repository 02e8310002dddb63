from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coop_answers import CoopAnswer
from app.db.models.coop_sessions import CoopSession
from app.db.models.questions import Question
from app.db.repo.coop_answers_repo import CoopAnswersRepo
from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.repo.questions_repo import QuestionsRepo
from app.game.coop.constants import STATUS_IN_PROGRESS, SUBMIT_CLAIM_ATTEMPTS
from app.game.coop.errors import (
    AlreadySubmittedOrInactiveError,
    CoopStorageUnavailableError,
    NoQuestionsToGradeError,
)
from app.game.coop.scoring import STATUS_CORRECT, normalize_answers, score_session, validate_answers
from app.game.coop.state import (
    compute_winner,
    participant_ids,
    participant_key,
    refresh_results_complete_ttl,
    results_complete,
)
from app.game.coop.types import CoopSessionView, SessionScore, SubmittedAnswer

from .internal import (
    build_session_view,
    ensure_participant,
    load_session_for_update,
    validate_client_duration,
)

logger = structlog.get_logger(__name__)


def _ensure_submittable(coop_session: CoopSession, *, user_key: str) -> None:
    if coop_session.status != STATUS_IN_PROGRESS or user_key in (coop_session.submitted_by or []):
        raise AlreadySubmittedOrInactiveError
    if not coop_session.question_ids:
        raise NoQuestionsToGradeError


def _server_duration_ms(coop_session: CoopSession, *, now_utc: datetime) -> int:
    if coop_session.started_at is None:
        return 0
    return max(0, int((now_utc - coop_session.started_at).total_seconds() * 1000))


async def _claim_submission(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    answers: dict[str, list[int]],
    now_utc: datetime,
) -> tuple[CoopSession, dict[str, Question]]:
    user_key = participant_key(user_id)
    questions_by_id: dict[str, Question] | None = None
    for attempt in range(1, SUBMIT_CLAIM_ATTEMPTS + 1):
        coop_session = await load_session_for_update(session, session_id=session_id)
        expected_version = int(coop_session.version)
        ensure_participant(coop_session, user_id=user_id)
        _ensure_submittable(coop_session, user_key=user_key)

        if questions_by_id is None:
            questions = await QuestionsRepo.list_by_ids(
                session,
                question_ids=coop_session.question_ids,
            )
            questions_by_id = {str(question.question_id): question for question in questions}
            validate_answers(questions_by_id, answers)

        claimed = await CoopSessionsRepo.claim_submission(
            session,
            coop_session=coop_session,
            participant_key=user_key,
            expected_version=expected_version,
            now_utc=now_utc,
        )
        if claimed:
            return coop_session, questions_by_id
        logger.info(
            "coop_submission_claim_retry",
            session_id=str(session_id),
            user_id=int(user_id),
            attempt=attempt,
        )
    raise CoopStorageUnavailableError


async def _write_audit_rows(
    session: AsyncSession,
    *,
    coop_session: CoopSession,
    user_id: int,
    answers: dict[str, list[int]],
    score: SessionScore,
    client_duration_ms: int | None,
    now_utc: datetime,
) -> None:
    rows = [
        CoopAnswer(
            session_id=coop_session.id,
            user_id=int(user_id),
            question_id=item.question_id,
            selected=list(answers.get(item.question_id, [])),
            is_correct=item.status == STATUS_CORRECT,
            submitted_at=now_utc,
            client_duration_ms=client_duration_ms,
        )
        for item in score.breakdown
    ]
    try:
        async with session.begin_nested():
            await CoopAnswersRepo.add_many(session, answers=rows)
    except SQLAlchemyError:
        logger.exception(
            "coop_answers_audit_write_failed",
            session_id=str(coop_session.id),
            user_id=int(user_id),
            rows=len(rows),
        )


async def submit_coop_result(
    session: AsyncSession,
    *,
    session_id: UUID,
    user_id: int,
    answers: Sequence[SubmittedAnswer],
    now_utc: datetime,
    client_duration_ms: object = None,
) -> CoopSessionView:
    resolved_client_duration_ms = validate_client_duration(client_duration_ms)
    normalized = normalize_answers(answers)

    coop_session, questions_by_id = await _claim_submission(
        session,
        session_id=session_id,
        user_id=user_id,
        answers=normalized,
        now_utc=now_utc,
    )
    graded_ids = set(coop_session.question_ids)
    graded_answers = {
        question_id: selected
        for question_id, selected in normalized.items()
        if question_id in graded_ids
    }
    score = score_session(
        questions_by_id,
        graded_answers,
        coop_session.correction_mode,
        coop_session.question_ids,
    )
    duration_ms = _server_duration_ms(coop_session, now_utc=now_utc)
    user_key = participant_key(user_id)
    coop_session.results = {
        **(coop_session.results or {}),
        user_key: {
            "score": score.score,
            "score_pct": score.score_pct,
            "total": score.total,
            "duration_ms": duration_ms,
            "completed_at": now_utc.isoformat(),
        },
    }
    coop_session.server_duration_ms = duration_ms
    coop_session.updated_at = now_utc

    await _write_audit_rows(
        session,
        coop_session=coop_session,
        user_id=user_id,
        answers=graded_answers,
        score=score,
        client_duration_ms=resolved_client_duration_ms,
        now_utc=now_utc,
    )

    if results_complete(coop_session):
        coop_session.winner_user_id = compute_winner(
            coop_session.results,
            participant_ids(coop_session),
        )
        refresh_results_complete_ttl(coop_session, now_utc=now_utc)
        logger.info(
            "coop_session_results_complete",
            session_id=str(coop_session.id),
            winner_user_id=coop_session.winner_user_id,
        )

    logger.info(
        "coop_result_submitted",
        session_id=str(coop_session.id),
        user_id=int(user_id),
        score=score.score,
        score_pct=score.score_pct,
        total=score.total,
        server_duration_ms=duration_ms,
        client_duration_ms=resolved_client_duration_ms,
    )
    return build_session_view(coop_session)
