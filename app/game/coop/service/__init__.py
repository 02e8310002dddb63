from __future__ import annotations

from collections.abc import Awaitable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.game.coop.errors import CoopStorageUnavailableError
from app.game.coop.notifications import CoopNotifier
from app.game.coop.sampler import QuestionSampler
from app.game.coop.types import CoopSessionView, CreateSessionResult, LaunchResult, SubmittedAnswer
from app.realtime.hub import RealtimeConnection

from .create import create_coop_session
from .internal import build_session_view, parse_session_id, parse_user_id
from .launch import launch_coop_session, resolve_question_count
from .manage import cancel_coop_session, get_coop_session, set_coop_filters, set_coop_readiness
from .submit import submit_coop_result

logger = structlog.get_logger(__name__)


class CoopSessionService:
    """Runs coop operations in their own transaction, then fans out side effects."""

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: CoopNotifier,
        sampler: QuestionSampler,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._sampler = sampler

    @property
    def notifier(self) -> CoopNotifier:
        return self._notifier

    async def _after_commit(
        self,
        side_effect: Awaitable[None],
        *,
        operation: str,
        session_id: object,
    ) -> None:
        try:
            await side_effect
        except Exception:
            logger.exception(
                "coop_side_effect_failed",
                operation=operation,
                session_id=str(session_id),
            )

    async def create_session(
        self,
        *,
        initiator_user_id: object,
        friend_user_id: object,
    ) -> CreateSessionResult:
        resolved_initiator = parse_user_id(initiator_user_id)
        resolved_friend = parse_user_id(friend_user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            result = await create_coop_session(
                session,
                initiator_user_id=resolved_initiator,
                friend_user_id=resolved_friend,
                now_utc=now_utc,
            )
        await self._after_commit(
            self._notifier.session_created(result.session, friend_user_id=resolved_friend),
            operation="create_session",
            session_id=result.session.session_id,
        )
        return result

    async def set_filters(
        self,
        *,
        session_id: object,
        user_id: object,
        filters: Mapping[str, Any] | None = None,
        correction_mode: str | None = None,
        level: str | None = None,
        count: int | None = None,
    ) -> CoopSessionView:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            view = await set_coop_filters(
                session,
                session_id=resolved_session_id,
                user_id=resolved_user_id,
                now_utc=now_utc,
                filters=filters,
                correction_mode=correction_mode,
                level=level,
                count=count,
            )
        await self._after_commit(
            self._notifier.settings_updated(view, actor_user_id=resolved_user_id),
            operation="set_filters",
            session_id=resolved_session_id,
        )
        return view

    async def set_readiness(
        self,
        *,
        session_id: object,
        user_id: object,
        ready: bool,
    ) -> CoopSessionView:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            view = await set_coop_readiness(
                session,
                session_id=resolved_session_id,
                user_id=resolved_user_id,
                ready=ready,
                now_utc=now_utc,
            )
        await self._after_commit(
            self._notifier.readiness_changed(view),
            operation="set_readiness",
            session_id=resolved_session_id,
        )
        return view

    async def launch_session(self, *, session_id: object, user_id: object) -> LaunchResult:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            result = await launch_coop_session(
                session,
                session_id=resolved_session_id,
                user_id=resolved_user_id,
                sampler=self._sampler,
                now_utc=now_utc,
            )
        if not result.idempotent_replay:
            await self._after_commit(
                self._notifier.session_started(result.session),
                operation="launch_session",
                session_id=resolved_session_id,
            )
        return result

    async def submit_result(
        self,
        *,
        session_id: object,
        user_id: object,
        answers: Sequence[SubmittedAnswer],
        duration_ms: object = None,
    ) -> CoopSessionView:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        try:
            async with self._session_factory.begin() as session:
                view = await submit_coop_result(
                    session,
                    session_id=resolved_session_id,
                    user_id=resolved_user_id,
                    answers=answers,
                    now_utc=now_utc,
                    client_duration_ms=duration_ms,
                )
        except SQLAlchemyError as exc:
            logger.exception(
                "coop_submission_storage_failed",
                session_id=str(resolved_session_id),
                user_id=resolved_user_id,
            )
            raise CoopStorageUnavailableError from exc
        await self._after_commit(
            self._notifier.result_submitted(view, user_id=resolved_user_id),
            operation="submit_result",
            session_id=resolved_session_id,
        )
        return view

    async def get_session(
        self,
        *,
        session_id: object,
        user_id: object,
        connection: RealtimeConnection | None = None,
    ) -> CoopSessionView:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            view = await get_coop_session(
                session,
                session_id=resolved_session_id,
                user_id=resolved_user_id,
                now_utc=now_utc,
            )
        if connection is not None:
            self._notifier.snapshot(view, connection=connection)
        else:
            self._notifier.snapshot(view, user_id=resolved_user_id)
        return view

    async def cancel_session(self, *, session_id: object, user_id: object) -> CoopSessionView:
        resolved_session_id = parse_session_id(session_id)
        resolved_user_id = parse_user_id(user_id)
        now_utc = datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            view, cancelled_now = await cancel_coop_session(
                session,
                session_id=resolved_session_id,
                user_id=resolved_user_id,
                now_utc=now_utc,
            )
        if cancelled_now:
            await self._after_commit(
                self._notifier.session_cancelled(view),
                operation="cancel_session",
                session_id=resolved_session_id,
            )
        return view


__all__ = [
    "CoopSessionService",
    "build_session_view",
    "cancel_coop_session",
    "create_coop_session",
    "get_coop_session",
    "launch_coop_session",
    "parse_session_id",
    "parse_user_id",
    "resolve_question_count",
    "set_coop_filters",
    "set_coop_readiness",
    "submit_coop_result",
]
