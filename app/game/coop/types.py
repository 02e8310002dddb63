from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from app.game.coop.errors import InvalidFiltersError

MAX_CATEGORY_ID_LENGTH = 64
MAX_STUDY_YEAR = 10


def _clean_text(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidFiltersError
    cleaned = value.strip()
    return cleaned or None


def _clean_ids(values: Iterable[object] | None) -> tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, (str, bytes)):
        raise InvalidFiltersError
    cleaned: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        candidate = value.strip()
        if not candidate or len(candidate) > MAX_CATEGORY_ID_LENGTH:
            continue
        if candidate not in cleaned:
            cleaned.append(candidate)
    return tuple(cleaned)


def _clean_study_year(value: object) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidFiltersError("Study year must be an integer.")
    if value < 1 or value > MAX_STUDY_YEAR:
        raise InvalidFiltersError("Study year is out of range.")
    return value


@dataclass(frozen=True, slots=True)
class QuestionFilter:
    speciality: str | None = None
    study_year: int | None = None
    university: str | None = None
    unit_ids: tuple[str, ...] = ()
    module_ids: tuple[str, ...] = ()
    course_ids: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> QuestionFilter:
        if not raw:
            return cls()
        speciality = _clean_text(raw.get("speciality"))
        return cls(
            speciality=speciality.lower() if speciality is not None else None,
            study_year=_clean_study_year(raw.get("study_year")),
            university=_clean_text(raw.get("university")),
            unit_ids=_clean_ids(raw.get("unit_ids")),
            module_ids=_clean_ids(raw.get("module_ids")),
            course_ids=_clean_ids(raw.get("course_ids")),
        )

    def with_profile_defaults(
        self,
        *,
        speciality: str | None,
        study_year: int | None,
    ) -> QuestionFilter:
        resolved_speciality = self.speciality
        if resolved_speciality is None and speciality and speciality.strip():
            resolved_speciality = speciality.strip().lower()
        resolved_study_year = self.study_year
        if resolved_study_year is None and study_year is not None:
            resolved_study_year = int(study_year)
        return QuestionFilter(
            speciality=resolved_speciality,
            study_year=resolved_study_year,
            university=self.university,
            unit_ids=self.unit_ids,
            module_ids=self.module_ids,
            course_ids=self.course_ids,
        )

    def cache_key(self) -> tuple[object, ...]:
        return (
            self.speciality,
            self.study_year,
            self.university.lower() if self.university is not None else None,
            tuple(sorted(self.unit_ids)),
            tuple(sorted(self.module_ids)),
            tuple(sorted(self.course_ids)),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "speciality": self.speciality,
            "study_year": self.study_year,
            "university": self.university,
            "unit_ids": list(self.unit_ids),
            "module_ids": list(self.module_ids),
            "course_ids": list(self.course_ids),
        }


@dataclass(frozen=True, slots=True)
class SubmittedAnswer:
    question_id: str
    selected_option_indexes: Sequence[object] = ()


@dataclass(frozen=True, slots=True)
class QuestionScore:
    question_id: str
    score: float
    status: str


@dataclass(frozen=True, slots=True)
class SessionScore:
    score: float
    score_pct: float
    total: int
    breakdown: tuple[QuestionScore, ...] = ()


@dataclass(slots=True)
class CoopSessionView:
    session_id: UUID
    initiator_user_id: int
    participant_ids: tuple[int, int]
    status: str
    readiness: dict[str, bool]
    filters: dict[str, Any]
    question_count: int | None
    correction_mode: str
    level: str | None
    question_ids: list[str]
    seed: str | None
    started_at: datetime | None
    server_duration_ms: int | None
    submitted_by: list[str]
    results: dict[str, dict[str, Any]]
    winner_user_id: int | None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.session_id),
            "initiator": str(self.initiator_user_id),
            "participants": [str(user_id) for user_id in self.participant_ids],
            "status": self.status,
            "readiness": dict(self.readiness),
            "filters": {**self.filters, "count": self.question_count},
            "correction_mode": self.correction_mode,
            "level": self.level,
            "question_ids": list(self.question_ids),
            "seed": self.seed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "server_duration_ms": self.server_duration_ms,
            "submitted_by": list(self.submitted_by),
            "results": {key: dict(value) for key, value in self.results.items()},
            "winner": str(self.winner_user_id) if self.winner_user_id is not None else None,
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class CoopQuestionView:
    question_id: str
    text: str
    options: list[str]
    unit: str | None = None
    module: str | None = None
    course: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.question_id,
            "text": self.text,
            "options": list(self.options),
            "unit": self.unit,
            "module": self.module,
            "course": self.course,
        }


@dataclass(slots=True)
class LaunchResult:
    session: CoopSessionView
    questions: list[CoopQuestionView] = field(default_factory=list)
    idempotent_replay: bool = False


@dataclass(slots=True)
class CreateSessionResult:
    session: CoopSessionView
    refreshed: bool = False
