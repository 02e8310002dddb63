from __future__ import annotations

import asyncio
import random
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from time import monotonic

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repo.questions_repo import QuestionsRepo
from app.game.coop.constants import (
    MAX_QUESTION_COUNT,
    MIN_QUESTION_COUNT,
    SAMPLE_CACHE_MAX_ENTRIES,
    SAMPLE_CACHE_TTL_SECONDS,
)
from app.game.coop.errors import CountOutOfRangeError
from app.game.coop.types import QuestionFilter

logger = structlog.get_logger(__name__)


@dataclass(slots=True)
class _SampleCacheEntry:
    loaded_at_mono: float
    question_ids: tuple[str, ...]


def validate_count(count: object) -> int:
    if isinstance(count, bool) or not isinstance(count, int):
        raise CountOutOfRangeError
    if count < MIN_QUESTION_COUNT or count > MAX_QUESTION_COUNT:
        raise CountOutOfRangeError(
            f"Question count must be between {MIN_QUESTION_COUNT} and {MAX_QUESTION_COUNT}."
        )
    return count


class QuestionSampler:
    def __init__(
        self,
        *,
        ttl_seconds: float = SAMPLE_CACHE_TTL_SECONDS,
        max_entries: int = SAMPLE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._ttl_seconds = max(0.0, float(ttl_seconds))
        self._max_entries = max(1, int(max_entries))
        self._clock = clock
        self._cache: OrderedDict[tuple[object, ...], _SampleCacheEntry] = OrderedDict()
        self._key_locks: dict[tuple[object, ...], asyncio.Lock] = {}

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def _fresh_entry(self, cache_key: tuple[object, ...], count: int) -> _SampleCacheEntry | None:
        cached = self._cache.get(cache_key)
        if cached is None:
            return None
        if (self._clock() - cached.loaded_at_mono) > self._ttl_seconds:
            self._cache.pop(cache_key, None)
            return None
        if len(cached.question_ids) < count:
            return None
        return cached

    def _store(self, cache_key: tuple[object, ...], question_ids: tuple[str, ...]) -> None:
        self._cache[cache_key] = _SampleCacheEntry(
            loaded_at_mono=self._clock(),
            question_ids=question_ids,
        )
        self._cache.move_to_end(cache_key)
        while len(self._cache) > self._max_entries:
            self._cache.popitem(last=False)

    async def sample(
        self,
        session: AsyncSession,
        *,
        question_filter: QuestionFilter,
        count: int,
        seed: str | None = None,
    ) -> list[str]:
        resolved_count = validate_count(count)
        cache_key = (question_filter.cache_key(), resolved_count)

        cached = self._fresh_entry(cache_key, resolved_count)
        if cached is not None:
            return list(cached.question_ids[:resolved_count])

        lock = self._key_locks.setdefault(cache_key, asyncio.Lock())
        try:
            async with lock:
                return await self._load(
                    session,
                    cache_key=cache_key,
                    question_filter=question_filter,
                    count=resolved_count,
                    seed=seed,
                )
        finally:
            if not lock.locked():
                self._key_locks.pop(cache_key, None)

    async def _load(
        self,
        session: AsyncSession,
        *,
        cache_key: tuple[object, ...],
        question_filter: QuestionFilter,
        count: int,
        seed: str | None,
    ) -> list[str]:
        cached = self._fresh_entry(cache_key, count)
        if cached is not None:
            return list(cached.question_ids[:count])

        pool_ids = await QuestionsRepo.list_ids_matching(
            session,
            speciality=question_filter.speciality,
            study_year=question_filter.study_year,
            university=question_filter.university,
            unit_ids=question_filter.unit_ids,
            module_ids=question_filter.module_ids,
            course_ids=question_filter.course_ids,
        )
        rng = random.Random(seed) if seed is not None else random.SystemRandom()
        picked = tuple(rng.sample(list(pool_ids), min(count, len(pool_ids))))
        if picked:
            self._store(cache_key, picked)
        logger.info(
            "coop_questions_sampled",
            pool_size=len(pool_ids),
            requested=count,
            sampled=len(picked),
        )
        return list(picked)
