from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.game.coop.errors import SessionInactiveError, SessionNotEditableError
from app.game.coop.state import (
    can_transition,
    compute_winner,
    default_winner,
    expire_if_due,
    expires_at_for,
    results_complete,
    set_pre_launch_status,
    transition,
)
from tests.game.coop_fixtures import ALICE, BOB, build_coop_row

UTC = timezone.utc
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _result(score_pct: float, duration_ms: int) -> dict[str, float | int]:
    return {"score": 0, "score_pct": score_pct, "total": 10, "duration_ms": duration_ms}


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        ("pending", "ready", True),
        ("pending", "pending", True),
        ("pending", "in_progress", False),
        ("ready", "in_progress", True),
        ("ready", "pending", True),
        ("in_progress", "ready", False),
        ("in_progress", "expired", True),
        ("cancelled", "pending", False),
        ("expired", "cancelled", False),
    ],
)
def test_can_transition_table(current: str, target: str, allowed: bool) -> None:
    assert can_transition(current, target) is allowed


def test_transition_out_of_terminal_state_is_inactive() -> None:
    row = build_coop_row(now_utc=NOW, status="cancelled")

    with pytest.raises(SessionInactiveError):
        transition(row, "pending", now_utc=NOW)


def test_transition_backwards_from_in_progress_is_not_editable() -> None:
    row = build_coop_row(now_utc=NOW, status="in_progress")

    with pytest.raises(SessionNotEditableError):
        transition(row, "pending", now_utc=NOW)


def test_transition_recomputes_ttl_window() -> None:
    row = build_coop_row(now_utc=NOW, status="ready")
    later = NOW + timedelta(minutes=5)

    transition(row, "in_progress", now_utc=later)

    assert row.expires_at == later + timedelta(hours=6)
    assert row.updated_at == later


def test_ttl_windows_per_state() -> None:
    assert expires_at_for("pending", now_utc=NOW) == NOW + timedelta(minutes=30)
    assert expires_at_for("ready", now_utc=NOW) == NOW + timedelta(minutes=30)
    assert expires_at_for("in_progress", now_utc=NOW) == NOW + timedelta(hours=6)
    assert expires_at_for("in_progress", now_utc=NOW, results_complete=True) == NOW + timedelta(hours=1)
    assert expires_at_for("cancelled", now_utc=NOW) == NOW + timedelta(minutes=10)


def test_expire_if_due_only_for_elapsed_pre_launch_sessions() -> None:
    stale = build_coop_row(now_utc=NOW, status="pending", expires_at=NOW - timedelta(seconds=1))
    fresh = build_coop_row(now_utc=NOW, status="ready")
    running = build_coop_row(now_utc=NOW, status="in_progress", expires_at=NOW - timedelta(hours=1))

    assert expire_if_due(stale, now_utc=NOW) is True
    assert stale.status == "expired"
    assert expire_if_due(fresh, now_utc=NOW) is False
    assert expire_if_due(running, now_utc=NOW) is False
    assert running.status == "in_progress"


def test_set_pre_launch_status_same_status_renews_ttl() -> None:
    row = build_coop_row(now_utc=NOW, status="pending", expires_at=NOW + timedelta(minutes=1))
    later = NOW + timedelta(minutes=10)

    set_pre_launch_status(row, "pending", now_utc=later)

    assert row.status == "pending"
    assert row.expires_at == later + timedelta(minutes=30)


@pytest.mark.parametrize(
    ("alice", "bob", "expected"),
    [
        (_result(80.0, 9_000), _result(60.0, 1_000), ALICE),
        (_result(50.0, 9_000), _result(50.0, 8_000), BOB),
        (_result(50.0, 8_000), _result(50.0, 8_000), None),
        (_result(0.0, 1), _result(100.0, 10_000_000), BOB),
    ],
)
def test_compute_winner_is_order_independent(alice, bob, expected) -> None:  # noqa: ANN001
    forward = compute_winner({str(ALICE): alice, str(BOB): bob}, (ALICE, BOB))
    backward = compute_winner({str(BOB): bob, str(ALICE): alice}, (BOB, ALICE))

    assert forward == expected
    assert backward == expected


def test_compute_winner_needs_both_results() -> None:
    assert compute_winner({str(ALICE): _result(100.0, 1)}, (ALICE, BOB)) is None


def test_default_winner_only_with_exactly_one_result() -> None:
    one = build_coop_row(now_utc=NOW, status="in_progress", results={str(BOB): _result(10.0, 5)})
    none = build_coop_row(now_utc=NOW, status="in_progress")
    both = build_coop_row(
        now_utc=NOW,
        status="in_progress",
        results={str(ALICE): _result(10.0, 5), str(BOB): _result(20.0, 5)},
    )

    assert default_winner(one) == BOB
    assert default_winner(none) is None
    assert default_winner(both) is None
    assert results_complete(both) is True
    assert results_complete(one) is False
