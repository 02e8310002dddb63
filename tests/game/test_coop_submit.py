from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.game.coop.errors import (
    AlreadySubmittedOrInactiveError,
    CoopStorageUnavailableError,
    InvalidDurationError,
    InvalidSelectionError,
    NoQuestionsToGradeError,
    NotParticipantError,
)
from app.game.coop.sampler import QuestionSampler
from app.game.coop.service import CoopSessionService
from app.game.coop.types import SubmittedAnswer
from tests.game.coop_fixtures import (
    ALICE,
    BOB,
    CAROL,
    FakeNotifier,
    fake_question,
    in_progress_row,
    install_fake_repos,
    seeded_store,
)

UTC = timezone.utc
QUESTION_IDS = ["q00", "q01", "q02", "q03", "q04"]


def _service(monkeypatch: pytest.MonkeyPatch, store) -> tuple[CoopSessionService, FakeNotifier]:  # noqa: ANN001
    install_fake_repos(monkeypatch, store)
    notifier = FakeNotifier()
    service = CoopSessionService(
        session_factory=store.session_factory(),
        notifier=notifier,
        sampler=QuestionSampler(),
    )
    return service, notifier


def _answers(selected: dict[str, list[int]]) -> list[SubmittedAnswer]:
    return [
        SubmittedAnswer(question_id=question_id, selected_option_indexes=tuple(indexes))
        for question_id, indexes in selected.items()
    ]


def _all_correct() -> list[SubmittedAnswer]:
    return _answers({question_id: [0] for question_id in QUESTION_IDS})


@pytest.mark.asyncio
async def test_binary_all_correct_scores_full_marks(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(
        store,
        now_utc=datetime.now(UTC),
        question_ids=QUESTION_IDS,
        correction_mode="binary",
    )
    service, notifier = _service(monkeypatch, store)

    view = await service.submit_result(
        session_id=row.id,
        user_id=ALICE,
        answers=_all_correct(),
        duration_ms=61_500.7,
    )

    result = view.results[str(ALICE)]
    assert result["score"] == 5
    assert result["score_pct"] == 100
    assert result["total"] == 5
    assert result["duration_ms"] >= 120_000
    assert view.submitted_by == [str(ALICE)]
    assert view.winner_user_id is None
    assert row.version == 1
    assert len(store.answers) == 5
    assert all(answer.is_correct for answer in store.answers)
    assert {answer.client_duration_ms for answer in store.answers} == {61_500}
    assert notifier.names() == ["result_submitted"]


@pytest.mark.asyncio
async def test_second_submission_decides_winner_and_shortens_ttl(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())
    view = await service.submit_result(
        session_id=row.id,
        user_id=BOB,
        answers=_answers({"q00": [0], "q01": [1]}),
    )

    assert view.winner_user_id == ALICE
    assert view.status == "in_progress"
    assert view.results[str(BOB)]["score_pct"] == pytest.approx(20.0)
    remaining = (row.expires_at - datetime.now(UTC)).total_seconds()
    assert 3500 < remaining <= 3600


@pytest.mark.asyncio
async def test_repeat_submission_is_rejected_and_result_untouched(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())
    first_result = dict(row.results[str(ALICE)])

    with pytest.raises(AlreadySubmittedOrInactiveError):
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_answers({"q00": [1]}))

    assert row.results[str(ALICE)] == first_result
    assert row.submitted_by == [str(ALICE)]


@pytest.mark.asyncio
async def test_concurrent_double_submit_succeeds_exactly_once(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    outcomes = await asyncio.gather(
        service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct()),
        service.submit_result(session_id=row.id, user_id=ALICE, answers=_answers({"q00": [1]})),
        return_exceptions=True,
    )

    successes = [outcome for outcome in outcomes if not isinstance(outcome, BaseException)]
    failures = [outcome for outcome in outcomes if isinstance(outcome, BaseException)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], AlreadySubmittedOrInactiveError)
    assert row.submitted_by == [str(ALICE)]
    assert list(row.results) == [str(ALICE)]
    assert len(store.answers) == 5


@pytest.mark.asyncio
async def test_concurrent_submissions_from_both_participants_both_land(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    await asyncio.gather(
        service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct()),
        service.submit_result(session_id=row.id, user_id=BOB, answers=_all_correct()),
    )

    assert sorted(row.submitted_by) == sorted([str(ALICE), str(BOB)])
    assert set(row.results) == {str(ALICE), str(BOB)}
    assert row.version == 2


@pytest.mark.asyncio
async def test_invalid_selection_is_rejected_before_claim(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    with pytest.raises(InvalidSelectionError):
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_answers({"q00": [9]}))

    assert row.submitted_by == []
    assert row.version == 0


@pytest.mark.parametrize("duration_ms", [-1, float("nan"), float("inf"), "12", True])
@pytest.mark.asyncio
async def test_invalid_client_duration_is_rejected(
    monkeypatch: pytest.MonkeyPatch,
    duration_ms: object,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    with pytest.raises(InvalidDurationError):
        await service.submit_result(
            session_id=row.id,
            user_id=ALICE,
            answers=_all_correct(),
            duration_ms=duration_ms,
        )
    assert row.submitted_by == []


@pytest.mark.asyncio
async def test_session_without_questions_cannot_be_graded(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=[])
    service, _ = _service(monkeypatch, store)

    with pytest.raises(NoQuestionsToGradeError):
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())


@pytest.mark.asyncio
async def test_outsider_and_pre_launch_submissions_are_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    with pytest.raises(NotParticipantError):
        await service.submit_result(session_id=row.id, user_id=CAROL, answers=_all_correct())

    row.status = "ready"
    with pytest.raises(AlreadySubmittedOrInactiveError):
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())


@pytest.mark.asyncio
async def test_unknown_question_ids_are_ignored_when_grading(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    store.add_questions(fake_question("foreign"))
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    view = await service.submit_result(
        session_id=row.id,
        user_id=ALICE,
        answers=_answers({"q00": [0], "foreign": [0], "ghost": [7]}),
    )

    assert view.results[str(ALICE)]["score"] == 1
    assert {answer.question_id for answer in store.answers} == set(QUESTION_IDS)


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_submission(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    store.fail_audit = True
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)

    view = await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())

    assert view.results[str(ALICE)]["score_pct"] == 100
    assert store.answers == []


@pytest.mark.asyncio
async def test_storage_failure_surfaces_as_transient_error(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, notifier = _service(monkeypatch, store)

    async def broken_claim(session, **kwargs):  # noqa: ANN001
        del session, kwargs
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(CoopSessionsRepo, "claim_submission", staticmethod(broken_claim))

    with pytest.raises(CoopStorageUnavailableError) as exc_info:
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())

    assert exc_info.value.kind == "transient"
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_exhausted_claim_retries_surface_as_transient_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    service, _ = _service(monkeypatch, store)
    attempts: list[int] = []

    async def always_lost(session, **kwargs):  # noqa: ANN001
        del session
        attempts.append(kwargs["expected_version"])
        return False

    monkeypatch.setattr(CoopSessionsRepo, "claim_submission", staticmethod(always_lost))

    with pytest.raises(CoopStorageUnavailableError):
        await service.submit_result(session_id=row.id, user_id=ALICE, answers=_all_correct())

    assert len(attempts) == 3
    assert row.results == {}
