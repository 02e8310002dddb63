from __future__ import annotations

import asyncio
import contextlib
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.repo.coop_sessions_repo import CoopSessionsRepo
from app.game.coop.constants import (
    INACTIVITY_SECONDS,
    STATUS_EXPIRED,
    STATUS_IN_PROGRESS,
    SWEEP_BATCH_SIZE,
    SWEEP_INTERVAL_SECONDS,
)
from app.game.coop.notifications import CoopNotifier
from app.game.coop.service.internal import build_session_view
from app.game.coop.state import default_winner, results_complete, transition
from app.game.coop.types import CoopSessionView

logger = structlog.get_logger(__name__)


async def expire_abandoned_sessions(
    session: AsyncSession,
    *,
    now_utc: datetime,
    inactivity_seconds: int = INACTIVITY_SECONDS,
    limit: int = SWEEP_BATCH_SIZE,
) -> list[tuple[CoopSessionView, bool]]:
    stale_sessions = await CoopSessionsRepo.list_stale_in_progress_for_update(
        session,
        updated_before_utc=now_utc - timedelta(seconds=max(1, int(inactivity_seconds))),
        limit=limit,
    )
    expired: list[tuple[CoopSessionView, bool]] = []
    for coop_session in stale_sessions:
        if coop_session.status != STATUS_IN_PROGRESS:
            continue
        session_id = str(coop_session.id)
        try:
            async with session.begin_nested():
                finished = results_complete(coop_session)
                winner_user_id = default_winner(coop_session)
                if winner_user_id is not None:
                    coop_session.winner_user_id = winner_user_id
                transition(coop_session, STATUS_EXPIRED, now_utc=now_utc)
        except Exception:
            logger.exception("coop_sweep_session_failed", session_id=session_id)
            continue
        expired.append((build_session_view(coop_session), not finished))
        logger.info(
            "coop_session_abandoned",
            session_id=session_id,
            winner_user_id=coop_session.winner_user_id,
            results=len(coop_session.results or {}),
        )
    return expired


class CoopSessionSweeper:
    """Periodically expires in-progress sessions nobody touched for a while."""

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: CoopNotifier,
        interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        inactivity_seconds: int = INACTIVITY_SECONDS,
        batch_size: int = SWEEP_BATCH_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._notifier = notifier
        self._interval_seconds = max(0.01, float(interval_seconds))
        self._inactivity_seconds = max(1, int(inactivity_seconds))
        self._batch_size = max(1, int(batch_size))
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self, *, now_utc: datetime | None = None) -> int:
        resolved_now_utc = now_utc or datetime.now(timezone.utc)
        async with self._session_factory.begin() as session:
            expired = await expire_abandoned_sessions(
                session,
                now_utc=resolved_now_utc,
                inactivity_seconds=self._inactivity_seconds,
                limit=self._batch_size,
            )
        for view, abandoned in expired:
            if not abandoned:
                continue
            try:
                await self._notifier.session_abandoned(view)
            except Exception:
                logger.exception("coop_sweep_notify_failed", session_id=str(view.session_id))
        logger.info("coop_sweep_processed", expired=len(expired))
        return len(expired)

    async def _run_forever(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("coop_sweep_failed")
            await asyncio.sleep(self._interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run_forever(), name="coop-session-sweeper")
        logger.info("coop_sweeper_started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("coop_sweeper_stopped")
