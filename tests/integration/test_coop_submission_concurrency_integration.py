from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from app.db.repo.coop_answers_repo import CoopAnswersRepo
from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.db.session import SessionLocal
from app.game.coop.errors import AlreadySubmittedOrInactiveError
from app.game.coop.sampler import QuestionSampler
from app.game.coop.service import CoopSessionService
from app.game.coop.types import SubmittedAnswer
from tests.game.coop_fixtures import FakeNotifier
from tests.integration.coop_fixtures import seed_duel

UTC = timezone.utc


def _service() -> CoopSessionService:
    return CoopSessionService(
        session_factory=SessionLocal,
        notifier=FakeNotifier(),
        sampler=QuestionSampler(),
    )


@pytest.mark.asyncio
async def test_concurrent_double_submit_lands_once() -> None:
    alice, _, session_id, question_ids = await seed_duel()
    answers = [SubmittedAnswer(question_id=qid, selected_option_indexes=(0,)) for qid in question_ids]
    service = _service()

    outcomes = await asyncio.gather(
        service.submit_result(session_id=session_id, user_id=alice, answers=answers),
        service.submit_result(session_id=session_id, user_id=alice, answers=answers),
        return_exceptions=True,
    )

    failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadySubmittedOrInactiveError)

    async with SessionLocal.begin() as session:
        row = await CoopSessionsRepo.get_by_id(session, session_id)
        audit_rows = await CoopAnswersRepo.list_for_session_user(
            session,
            session_id=session_id,
            user_id=alice,
        )
    assert row is not None
    assert row.submitted_by == [str(alice)]
    assert row.version == 1
    assert row.results[str(alice)]["score_pct"] == 100
    assert len(audit_rows) == len(question_ids)


@pytest.mark.asyncio
async def test_both_participants_submitting_concurrently_decide_winner() -> None:
    alice, bob, session_id, question_ids = await seed_duel()
    right = [SubmittedAnswer(question_id=qid, selected_option_indexes=(0,)) for qid in question_ids]
    wrong = [SubmittedAnswer(question_id=qid, selected_option_indexes=(1,)) for qid in question_ids]
    service = _service()

    await asyncio.gather(
        service.submit_result(session_id=session_id, user_id=alice, answers=right),
        service.submit_result(session_id=session_id, user_id=bob, answers=wrong),
    )

    async with SessionLocal.begin() as session:
        row = await CoopSessionsRepo.get_by_id(session, session_id)
    assert row is not None
    assert sorted(row.submitted_by) == sorted([str(alice), str(bob)])
    assert row.winner_user_id == alice
    assert row.status == "in_progress"


@pytest.mark.asyncio
async def test_claim_with_stale_version_is_refused() -> None:
    alice, _, session_id, _ = await seed_duel()

    async with SessionLocal.begin() as session:
        row = await CoopSessionsRepo.get_by_id_for_update(session, session_id)
        assert row is not None
        claimed = await CoopSessionsRepo.claim_submission(
            session,
            coop_session=row,
            participant_key=str(alice),
            expected_version=7,
            now_utc=datetime.now(UTC),
        )

    assert claimed is False
    assert row.submitted_by == []
