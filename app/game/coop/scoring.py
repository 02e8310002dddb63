from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence

from app.db.models.questions import Question
from app.game.coop.constants import CORRECTION_MODE_BINARY, WRONG_PICK_PENALTY
from app.game.coop.errors import InvalidSelectionError
from app.game.coop.types import QuestionScore, SessionScore, SubmittedAnswer

STATUS_CORRECT = "correct"
STATUS_PARTIAL = "partial"
STATUS_WRONG = "wrong"


def _coerce_index(value: object) -> int | None:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return math.trunc(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return math.trunc(parsed) if math.isfinite(parsed) else None
    return None


def normalize_answers(answers: Iterable[SubmittedAnswer]) -> dict[str, list[int]]:
    normalized: dict[str, list[int]] = {}
    for answer in answers:
        question_id = str(answer.question_id or "").strip()
        if not question_id:
            continue
        selections: list[int] = []
        for raw in answer.selected_option_indexes or ():
            index = _coerce_index(raw)
            if index is not None and index not in selections:
                selections.append(index)
        normalized[question_id] = selections
    return normalized


def correct_indexes(question: Question) -> frozenset[int]:
    indexes: set[int] = set()
    for raw in question.correct_answer or ():
        index = _coerce_index(raw)
        if index is not None:
            indexes.add(index)
    return frozenset(indexes)


def validate_selection(selected: Sequence[int], *, option_count: int) -> None:
    if len(selected) > option_count:
        raise InvalidSelectionError("Too many options selected for the question.")
    for index in selected:
        if isinstance(index, bool) or not isinstance(index, int):
            raise InvalidSelectionError
        if index < 0 or index >= option_count:
            raise InvalidSelectionError


def score_question(
    correct: Iterable[int],
    selected: Sequence[int] | None,
    mode: str,
    option_count: int,
) -> tuple[float, str]:
    picks = list(selected or ())
    validate_selection(picks, option_count=option_count)
    correct_set = frozenset(correct)
    selected_set = frozenset(picks)

    if mode == CORRECTION_MODE_BINARY:
        if selected_set == correct_set:
            return 1.0, STATUS_CORRECT
        return 0.0, STATUS_WRONG

    score = 0.0
    for index in selected_set:
        if index in correct_set:
            score += 1.0
        else:
            score -= WRONG_PICK_PENALTY
    score = max(0.0, min(1.0, score))
    if score == 1.0:
        return score, STATUS_CORRECT
    if score == 0.0:
        return score, STATUS_WRONG
    return score, STATUS_PARTIAL


def validate_answers(
    questions_by_id: Mapping[str, Question],
    answers: Mapping[str, Sequence[int]],
) -> None:
    for question_id, selected in answers.items():
        question = questions_by_id.get(question_id)
        if question is None:
            continue
        validate_selection(selected, option_count=len(question.options or ()))


def score_session(
    questions_by_id: Mapping[str, Question],
    answers: Mapping[str, Sequence[int]],
    mode: str,
    ordered_ids: Sequence[str],
) -> SessionScore:
    total_score = 0.0
    breakdown: list[QuestionScore] = []
    for question_id in ordered_ids:
        question = questions_by_id.get(str(question_id))
        if question is None:
            breakdown.append(QuestionScore(question_id=str(question_id), score=0.0, status=STATUS_WRONG))
            continue
        score, status = score_question(
            correct_indexes(question),
            answers.get(str(question_id)),
            mode,
            len(question.options or ()),
        )
        total_score += score
        breakdown.append(QuestionScore(question_id=str(question_id), score=score, status=status))

    total = len(ordered_ids)
    score_pct = (total_score / total) * 100 if total else 0.0
    return SessionScore(
        score=total_score,
        score_pct=max(0.0, min(100.0, score_pct)),
        total=total,
        breakdown=tuple(breakdown),
    )
