from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CoopCreateRequest(BaseModel):
    friend_id: int = Field(gt=0)


class CoopReadyRequest(BaseModel):
    ready: bool


class CoopFiltersPayload(BaseModel):
    unit_ids: list[str] | None = Field(default=None, max_length=200)
    module_ids: list[str] | None = Field(default=None, max_length=200)
    course_ids: list[str] | None = Field(default=None, max_length=200)
    study_year: int | None = None
    speciality: str | None = Field(default=None, max_length=32)
    university: str | None = Field(default=None, max_length=128)


class CoopFiltersRequest(BaseModel):
    filters: CoopFiltersPayload | None = None
    correction_mode: Literal["positive", "standard", "binary"] | None = None
    level: Literal["facile", "moyen", "difficile"] | None = None
    count: int | None = None


class CoopAnswerPayload(BaseModel):
    question_id: str = Field(min_length=1, max_length=64)
    selected_option_indexes: list[int | float | str] = Field(default_factory=list, max_length=20)


class CoopSubmitRequest(BaseModel):
    answers: list[CoopAnswerPayload] = Field(min_length=1, max_length=200)
    duration_ms: float | None = None


class CoopResultResponse(BaseModel):
    score: float
    score_pct: float
    total: int
    duration_ms: int
    completed_at: datetime


class CoopSessionResponse(BaseModel):
    id: str
    initiator: str
    participants: list[str]
    status: str
    readiness: dict[str, bool]
    filters: dict[str, object]
    correction_mode: str
    level: str | None = None
    question_ids: list[str]
    seed: str | None = None
    started_at: datetime | None = None
    server_duration_ms: int | None = None
    submitted_by: list[str]
    results: dict[str, CoopResultResponse]
    winner: str | None = None
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class CoopQuestionResponse(BaseModel):
    id: str
    text: str
    options: list[str]
    unit: str | None = None
    module: str | None = None
    course: str | None = None


class CoopSessionEnvelope(BaseModel):
    session: CoopSessionResponse


class CoopLaunchResponse(BaseModel):
    session: CoopSessionResponse
    questions: list[CoopQuestionResponse]
