from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.game.coop.sweeper import CoopSessionSweeper
from tests.game.coop_fixtures import (
    ALICE,
    BOB,
    FakeNotifier,
    build_coop_row,
    install_fake_repos,
    seeded_store,
)

UTC = timezone.utc
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _result(score_pct: float) -> dict[str, float | int | str]:
    return {"score": 1, "score_pct": score_pct, "total": 5, "duration_ms": 1000, "completed_at": "x"}


def _sweeper(monkeypatch: pytest.MonkeyPatch, store) -> tuple[CoopSessionSweeper, FakeNotifier]:  # noqa: ANN001
    install_fake_repos(monkeypatch, store)
    notifier = FakeNotifier()
    sweeper = CoopSessionSweeper(
        session_factory=store.session_factory(),
        notifier=notifier,
        interval_seconds=0.01,
        inactivity_seconds=300,
        batch_size=10,
    )
    return sweeper, notifier


@pytest.mark.asyncio
async def test_single_submitter_wins_by_default_after_inactivity(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = store.add_session(
        build_coop_row(
            now_utc=NOW - timedelta(minutes=10),
            status="in_progress",
            question_ids=["q00"],
            results={str(ALICE): _result(60.0)},
            submitted_by=[str(ALICE)],
        )
    )
    sweeper, notifier = _sweeper(monkeypatch, store)

    processed = await sweeper.run_once(now_utc=NOW)

    assert processed == 1
    assert row.status == "expired"
    assert row.winner_user_id == ALICE
    assert notifier.names() == ["session_abandoned"]


@pytest.mark.asyncio
async def test_no_results_expires_without_winner(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = store.add_session(
        build_coop_row(now_utc=NOW - timedelta(minutes=6), status="in_progress", question_ids=["q00"])
    )
    sweeper, notifier = _sweeper(monkeypatch, store)

    await sweeper.run_once(now_utc=NOW)

    assert row.status == "expired"
    assert row.winner_user_id is None
    assert notifier.names() == ["session_abandoned"]


@pytest.mark.asyncio
async def test_finished_session_expires_quietly_and_keeps_winner(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    row = build_coop_row(
        now_utc=NOW - timedelta(minutes=30),
        status="in_progress",
        question_ids=["q00"],
        results={str(ALICE): _result(60.0), str(BOB): _result(90.0)},
        submitted_by=[str(ALICE), str(BOB)],
    )
    row.winner_user_id = BOB
    store.add_session(row)
    sweeper, notifier = _sweeper(monkeypatch, store)

    await sweeper.run_once(now_utc=NOW)

    assert row.status == "expired"
    assert row.winner_user_id == BOB
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_recently_active_and_pre_launch_sessions_are_left_alone(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = seeded_store()
    active = store.add_session(
        build_coop_row(now_utc=NOW - timedelta(minutes=1), status="in_progress", question_ids=["q00"])
    )
    lobby = store.add_session(build_coop_row(now_utc=NOW - timedelta(hours=2), status="ready"))
    sweeper, _ = _sweeper(monkeypatch, store)

    processed = await sweeper.run_once(now_utc=NOW)

    assert processed == 0
    assert active.status == "in_progress"
    assert lobby.status == "ready"


@pytest.mark.asyncio
async def test_notification_failure_does_not_stop_sweep(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    rows = [
        store.add_session(
            build_coop_row(
                now_utc=NOW - timedelta(minutes=10, seconds=index),
                status="in_progress",
                question_ids=["q00"],
            )
        )
        for index in range(2)
    ]
    sweeper, notifier = _sweeper(monkeypatch, store)

    async def broken_abandoned(view):  # noqa: ANN001
        raise RuntimeError("hub down")

    monkeypatch.setattr(notifier, "session_abandoned", broken_abandoned)

    processed = await sweeper.run_once(now_utc=NOW)

    assert processed == 2
    assert all(row.status == "expired" for row in rows)


@pytest.mark.asyncio
async def test_start_and_stop_own_the_background_task(monkeypatch: pytest.MonkeyPatch) -> None:
    store = seeded_store()
    sweeper, _ = _sweeper(monkeypatch, store)

    sweeper.start()
    assert sweeper.running is True
    await asyncio.sleep(0.05)
    await sweeper.stop()

    assert sweeper.running is False
    assert store.commits >= 1
