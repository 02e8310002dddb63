from __future__ import annotations

from sqlalchemy import CheckConstraint, UniqueConstraint

from app.db.models import (  # noqa: F401
    CoopAnswer,
    CoopSession,
    Course,
    Friendship,
    Module,
    Question,
    Unit,
    User,
)
from app.db.models.base import Base


def test_all_coop_tables_registered() -> None:
    expected_tables = {
        "users",
        "friendships",
        "units",
        "modules",
        "courses",
        "questions",
        "coop_sessions",
        "coop_answers",
    }
    assert expected_tables.issubset(set(Base.metadata.tables))


def test_coop_session_constraints_present() -> None:
    coop_sessions = Base.metadata.tables["coop_sessions"]
    check_names = {
        constraint.name
        for constraint in coop_sessions.constraints
        if isinstance(constraint, CheckConstraint)
    }
    assert {
        "ck_coop_sessions_status",
        "ck_coop_sessions_correction_mode",
        "ck_coop_sessions_level",
        "ck_coop_sessions_distinct_participants",
        "ck_coop_sessions_question_count_range",
        "ck_coop_sessions_version_non_negative",
    }.issubset(check_names)

    index_names = {index.name for index in coop_sessions.indexes}
    assert "idx_coop_sessions_status_updated" in index_names
    assert "idx_coop_sessions_status_expires" in index_names
    assert "idx_coop_sessions_initiator_status" in index_names
    assert "idx_coop_sessions_partner_status" in index_names

    live_pair = next(index for index in coop_sessions.indexes if index.name == "uq_coop_sessions_live_pair")
    assert live_pair.unique is True
    assert live_pair.dialect_options["postgresql"]["where"] is not None


def test_collaborator_constraints_present() -> None:
    friendships = Base.metadata.tables["friendships"]
    unique_names = {
        constraint.name
        for constraint in friendships.constraints
        if isinstance(constraint, UniqueConstraint)
    }
    assert "uq_friendships_requester_recipient" in unique_names

    coop_answers = Base.metadata.tables["coop_answers"]
    assert {index.name for index in coop_answers.indexes} == {
        "idx_coop_answers_session_user",
        "idx_coop_answers_user_submitted",
    }

    questions = Base.metadata.tables["questions"]
    assert "idx_questions_speciality_year_status" in {index.name for index in questions.indexes}
