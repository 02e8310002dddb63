from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.curriculum import Course, Module, Unit
from app.db.models.questions import Question


@dataclass(frozen=True, slots=True)
class QuestionWithCategories:
    question: Question
    unit_name: str | None
    module_name: str | None
    course_name: str | None


class QuestionsRepo:
    @staticmethod
    async def list_ids_matching(
        session: AsyncSession,
        *,
        speciality: str | None = None,
        study_year: int | None = None,
        university: str | None = None,
        unit_ids: Sequence[str] = (),
        module_ids: Sequence[str] = (),
        course_ids: Sequence[str] = (),
    ) -> list[str]:
        stmt = (
            select(Question.question_id)
            .where(Question.status == "ACTIVE")
            .order_by(Question.question_id.asc())
        )
        if speciality:
            stmt = stmt.where(Question.speciality == speciality)
        if study_year is not None:
            stmt = stmt.where(Question.study_year == study_year)
        if university:
            stmt = stmt.where(func.lower(func.trim(Question.university)) == university.lower())
        if unit_ids:
            stmt = stmt.where(Question.unit_id.in_(tuple(unit_ids)))
        if module_ids:
            stmt = stmt.where(Question.module_id.in_(tuple(module_ids)))
        if course_ids:
            stmt = stmt.where(Question.course_id.in_(tuple(course_ids)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_ids(
        session: AsyncSession,
        *,
        question_ids: Sequence[str],
    ) -> list[Question]:
        if not question_ids:
            return []
        stmt = select(Question).where(Question.question_id.in_(tuple(question_ids)))
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_ids_with_categories(
        session: AsyncSession,
        *,
        question_ids: Sequence[str],
    ) -> list[QuestionWithCategories]:
        if not question_ids:
            return []
        stmt = (
            select(Question, Unit.name, Module.name, Course.name)
            .outerjoin(Unit, Unit.id == Question.unit_id)
            .outerjoin(Module, Module.id == Question.module_id)
            .outerjoin(Course, Course.id == Question.course_id)
            .where(Question.question_id.in_(tuple(question_ids)))
        )
        result = await session.execute(stmt)
        return [
            QuestionWithCategories(
                question=question,
                unit_name=unit_name,
                module_name=module_name,
                course_name=course_name,
            )
            for question, unit_name, module_name, course_name in result.all()
        ]
