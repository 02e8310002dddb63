from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

from app.db.models.coop_sessions import CoopSession
from app.game.coop.constants import (
    CANCELLED_TTL_SECONDS,
    IN_PROGRESS_TTL_SECONDS,
    PENDING_TTL_SECONDS,
    PRE_LAUNCH_STATUSES,
    RESULTS_COMPLETE_TTL_SECONDS,
    STATUS_CANCELLED,
    STATUS_EXPIRED,
    STATUS_IN_PROGRESS,
    STATUS_PENDING,
    STATUS_READY,
    TERMINAL_STATUSES,
)
from app.game.coop.errors import SessionInactiveError, SessionNotEditableError

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_PENDING, STATUS_READY, STATUS_CANCELLED, STATUS_EXPIRED}),
    STATUS_READY: frozenset({STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_CANCELLED, STATUS_EXPIRED}),
    STATUS_IN_PROGRESS: frozenset({STATUS_CANCELLED, STATUS_EXPIRED}),
    STATUS_CANCELLED: frozenset(),
    STATUS_EXPIRED: frozenset(),
}

TTL_SECONDS_BY_STATUS: dict[str, int] = {
    STATUS_PENDING: PENDING_TTL_SECONDS,
    STATUS_READY: PENDING_TTL_SECONDS,
    STATUS_IN_PROGRESS: IN_PROGRESS_TTL_SECONDS,
    STATUS_CANCELLED: CANCELLED_TTL_SECONDS,
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def participant_key(user_id: int) -> str:
    return str(int(user_id))


def participant_ids(coop_session: CoopSession) -> tuple[int, int]:
    return int(coop_session.initiator_user_id), int(coop_session.partner_user_id)


def is_participant(coop_session: CoopSession, user_id: int) -> bool:
    return int(user_id) in participant_ids(coop_session)


def initial_readiness(*user_ids: int) -> dict[str, bool]:
    return {participant_key(user_id): False for user_id in user_ids}


def all_ready(coop_session: CoopSession) -> bool:
    readiness = coop_session.readiness or {}
    return all(
        bool(readiness.get(participant_key(user_id), False))
        for user_id in participant_ids(coop_session)
    )


def results_complete(coop_session: CoopSession) -> bool:
    results = coop_session.results or {}
    return all(participant_key(user_id) in results for user_id in participant_ids(coop_session))


def expires_at_for(status: str, *, now_utc: datetime, results_complete: bool = False) -> datetime:
    if status == STATUS_IN_PROGRESS and results_complete:
        return now_utc + timedelta(seconds=RESULTS_COMPLETE_TTL_SECONDS)
    seconds = TTL_SECONDS_BY_STATUS.get(status)
    if seconds is None:
        return now_utc
    return now_utc + timedelta(seconds=seconds)


def transition(coop_session: CoopSession, target: str, *, now_utc: datetime) -> None:
    if not can_transition(coop_session.status, target):
        if is_terminal(coop_session.status):
            raise SessionInactiveError
        raise SessionNotEditableError
    coop_session.status = target
    coop_session.updated_at = now_utc
    if target != STATUS_EXPIRED:
        coop_session.expires_at = expires_at_for(target, now_utc=now_utc)


def refresh_results_complete_ttl(coop_session: CoopSession, *, now_utc: datetime) -> None:
    coop_session.expires_at = expires_at_for(
        STATUS_IN_PROGRESS,
        now_utc=now_utc,
        results_complete=True,
    )
    coop_session.updated_at = now_utc


def is_lazily_expired(coop_session: CoopSession, *, now_utc: datetime) -> bool:
    return coop_session.status in PRE_LAUNCH_STATUSES and coop_session.expires_at <= now_utc


def expire_if_due(coop_session: CoopSession, *, now_utc: datetime) -> bool:
    if not is_lazily_expired(coop_session, now_utc=now_utc):
        return False
    transition(coop_session, STATUS_EXPIRED, now_utc=now_utc)
    return True


def compute_winner(
    results: Mapping[str, Mapping[str, Any]],
    participants: tuple[int, int],
) -> int | None:
    first_user_id, second_user_id = participants
    first = results.get(participant_key(first_user_id))
    second = results.get(participant_key(second_user_id))
    if first is None or second is None:
        return None

    first_pct = float(first.get("score_pct", 0))
    second_pct = float(second.get("score_pct", 0))
    if first_pct != second_pct:
        return first_user_id if first_pct > second_pct else second_user_id

    first_duration = int(first.get("duration_ms", 0))
    second_duration = int(second.get("duration_ms", 0))
    if first_duration != second_duration:
        return first_user_id if first_duration < second_duration else second_user_id
    return None


def default_winner(coop_session: CoopSession) -> int | None:
    results = coop_session.results or {}
    submitted = [
        user_id for user_id in participant_ids(coop_session) if participant_key(user_id) in results
    ]
    if len(submitted) == 1:
        return submitted[0]
    return None


def set_pre_launch_status(coop_session: CoopSession, target: str, *, now_utc: datetime) -> None:
    if target == coop_session.status and target in PRE_LAUNCH_STATUSES:
        coop_session.expires_at = expires_at_for(target, now_utc=now_utc)
        coop_session.updated_at = now_utc
        return
    transition(coop_session, target, now_utc=now_utc)
