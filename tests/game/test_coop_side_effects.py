from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from app.game.coop.notifications import CoopNotifier
from app.game.coop.sampler import QuestionSampler
from app.game.coop.service import CoopSessionService
from app.game.coop.types import SubmittedAnswer
from app.realtime.hub import RealtimeHub
from tests.game.coop_fixtures import (
    ALICE,
    BOB,
    in_progress_row,
    install_fake_repos,
    seeded_store,
)

UTC = timezone.utc
QUESTION_IDS = ["q00", "q01", "q02", "q03", "q04"]


class BrokenConnection:
    def __init__(self) -> None:
        self.attempts = 0

    async def send_json(self, data: Any) -> None:
        del data
        self.attempts += 1
        raise ConnectionResetError("socket closed")


class BrokenPush:
    def __init__(self) -> None:
        self.calls = 0

    async def notify(self, **kwargs: Any) -> bool:
        del kwargs
        self.calls += 1
        raise RuntimeError("broker unreachable")


class ExplodingNotifier(CoopNotifier):
    async def result_submitted(self, view, *, user_id):  # noqa: ANN001
        raise RuntimeError("notifier crashed")

    async def session_cancelled(self, view):  # noqa: ANN001
        raise RuntimeError("notifier crashed")


async def _no_sleep(delay: float) -> None:
    del delay


def _hub() -> RealtimeHub:
    return RealtimeHub(
        throttle_seconds=10.0,
        send_attempts=2,
        backoff_base_seconds=0.0,
        backoff_max_seconds=0.0,
        sleep=_no_sleep,
    )


def _answers() -> list[SubmittedAnswer]:
    return [
        SubmittedAnswer(question_id=question_id, selected_option_indexes=(0,))
        for question_id in QUESTION_IDS
    ]


@pytest.mark.asyncio
async def test_submit_survives_failing_connection_and_push(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    install_fake_repos(monkeypatch, store)
    hub = _hub()
    push = BrokenPush()
    bob_connection = BrokenConnection()
    hub.connect(bob_connection, user_id=BOB)
    service = CoopSessionService(
        session_factory=store.session_factory(),
        notifier=CoopNotifier(realtime=hub, push=push),
        sampler=QuestionSampler(),
    )

    first = await service.submit_result(session_id=row.id, user_id=ALICE, answers=_answers())
    second = await service.submit_result(session_id=row.id, user_id=BOB, answers=_answers())
    await hub.drain()

    assert first.submitted_by == [str(ALICE)]
    assert set(second.results) == {str(ALICE), str(BOB)}
    assert row.results[str(ALICE)]["score"] == 5
    assert row.submitted_by == [str(ALICE), str(BOB)]
    assert bob_connection.attempts >= 2
    assert push.calls >= 1


@pytest.mark.asyncio
async def test_notifier_crash_after_commit_is_not_returned_to_caller(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    row = in_progress_row(store, now_utc=datetime.now(UTC), question_ids=QUESTION_IDS)
    install_fake_repos(monkeypatch, store)
    service = CoopSessionService(
        session_factory=store.session_factory(),
        notifier=ExplodingNotifier(realtime=_hub(), push=BrokenPush()),
        sampler=QuestionSampler(),
    )

    view = await service.submit_result(session_id=row.id, user_id=ALICE, answers=_answers())

    assert view.results[str(ALICE)]["score_pct"] == 100
    assert row.submitted_by == [str(ALICE)]
    assert store.commits == 1

    cancelled = await service.cancel_session(session_id=row.id, user_id=BOB)

    assert cancelled.status == "cancelled"
    assert row.status == "cancelled"


@pytest.mark.asyncio
async def test_emit_delivers_and_throttles_without_raising() -> None:
    hub = _hub()
    received: list[dict[str, Any]] = []

    class RecordingConnection:
        async def send_json(self, data: Any) -> None:
            received.append(data)

    connection = RecordingConnection()
    hub.connect(connection, user_id=ALICE)

    assert hub.emit_session_event(
        session_id="s-1",
        participant_ids=[ALICE, BOB],
        event="coop:opponent_answered",
        payload={"user_id": str(BOB)},
    )
    assert not hub.emit_session_event(
        session_id="s-1",
        participant_ids=[ALICE, BOB],
        event="coop:opponent_answered",
        payload={"user_id": str(BOB)},
    )
    await hub.drain()

    assert received == [{"event": "coop:opponent_answered", "data": {"user_id": str(BOB)}}]
