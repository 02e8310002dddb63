from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.coop_sessions import CoopSession
from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.repo.questions_repo import QuestionsRepo
from app.game.coop.errors import (
    InvalidDurationError,
    InvalidIdentifierError,
    NotParticipantError,
    SessionInactiveError,
    SessionNotFoundError,
)
from app.game.coop.state import is_lazily_expired, is_participant, is_terminal, participant_ids
from app.game.coop.types import CoopQuestionView, CoopSessionView


def parse_session_id(raw: object) -> UUID:
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw).strip())
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidIdentifierError("Invalid coop session identifier.") from exc


def parse_user_id(raw: object) -> int:
    if isinstance(raw, bool):
        raise InvalidIdentifierError("Invalid user identifier.")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise InvalidIdentifierError("Invalid user identifier.")
    if value <= 0:
        raise InvalidIdentifierError("Invalid user identifier.")
    return value


def validate_client_duration(raw: object) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise InvalidDurationError
    if not math.isfinite(raw) or raw < 0:
        raise InvalidDurationError
    return int(raw)


def build_session_view(coop_session: CoopSession) -> CoopSessionView:
    return CoopSessionView(
        session_id=coop_session.id,
        initiator_user_id=int(coop_session.initiator_user_id),
        participant_ids=participant_ids(coop_session),
        status=coop_session.status,
        readiness={str(key): bool(value) for key, value in (coop_session.readiness or {}).items()},
        filters=dict(coop_session.filters or {}),
        question_count=coop_session.question_count,
        correction_mode=coop_session.correction_mode,
        level=coop_session.level,
        question_ids=[str(question_id) for question_id in coop_session.question_ids or []],
        seed=coop_session.seed,
        started_at=coop_session.started_at,
        server_duration_ms=coop_session.server_duration_ms,
        submitted_by=[str(user_key) for user_key in coop_session.submitted_by or []],
        results={str(key): dict(value) for key, value in (coop_session.results or {}).items()},
        winner_user_id=(
            int(coop_session.winner_user_id) if coop_session.winner_user_id is not None else None
        ),
        expires_at=coop_session.expires_at,
        created_at=coop_session.created_at,
        updated_at=coop_session.updated_at,
    )


async def load_session_for_update(session: AsyncSession, *, session_id: UUID) -> CoopSession:
    coop_session = await CoopSessionsRepo.get_by_id_for_update(session, session_id)
    if coop_session is None:
        raise SessionNotFoundError
    return coop_session


def ensure_participant(coop_session: CoopSession, *, user_id: int) -> None:
    if not is_participant(coop_session, user_id):
        raise NotParticipantError


def ensure_active(coop_session: CoopSession, *, now_utc: datetime) -> None:
    if is_terminal(coop_session.status) or is_lazily_expired(coop_session, now_utc=now_utc):
        raise SessionInactiveError


async def load_question_views(
    session: AsyncSession,
    *,
    question_ids: Sequence[str],
) -> list[CoopQuestionView]:
    rows = await QuestionsRepo.list_by_ids_with_categories(session, question_ids=question_ids)
    by_id = {str(row.question.question_id): row for row in rows}
    views: list[CoopQuestionView] = []
    for question_id in question_ids:
        row = by_id.get(str(question_id))
        if row is None:
            continue
        views.append(
            CoopQuestionView(
                question_id=str(row.question.question_id),
                text=row.question.question_text,
                options=[str(option) for option in row.question.options or []],
                unit=row.unit_name,
                module=row.module_name,
                course=row.course_name,
            )
        )
    return views
