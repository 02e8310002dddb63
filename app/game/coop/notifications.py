from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import structlog

from app.game.coop.constants import (
    EVENT_BOTH_ANSWERED,
    EVENT_INVITE_RECEIVED,
    EVENT_OPPONENT_ABANDONED,
    EVENT_OPPONENT_ANSWERED,
    EVENT_SESSION_CANCELLED,
    EVENT_SESSION_FINISHED,
    EVENT_SESSION_READY,
    EVENT_SESSION_STARTED,
    EVENT_SESSION_UPDATED,
    EVENT_SNAPSHOT,
)
from app.game.coop.types import CoopSessionView
from app.realtime.hub import RealtimeConnection, RealtimeHub
from app.services.push_notifications import PushNotifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PushMessage:
    title: str
    body: str
    kind: str


PUSH_INVITE = PushMessage(title="👥 Nouveau défi", body="Un ami vous invite en coop", kind="coop_invite")
PUSH_READY = PushMessage(title="🎮 Session prête", body="Votre coop peut démarrer.", kind="coop_ready")
PUSH_STARTED = PushMessage(title="🎮 Coop commencée", body="La partie a démarré.", kind="coop_started")
PUSH_VICTORY = PushMessage(
    title="🏆 Victoire !", body="La session coop est terminée.", kind="coop_finished"
)
PUSH_DEFEAT = PushMessage(
    title="💪 Défaite en coop", body="La session coop est terminée.", kind="coop_finished"
)
PUSH_DRAW = PushMessage(title="🤝 Égalité", body="La session coop est terminée.", kind="coop_finished")
PUSH_ABANDONED = PushMessage(
    title="⚠️ Session expirée", body="Votre adversaire a quitté.", kind="coop_abandoned"
)


def finished_message_for(view: CoopSessionView, user_id: int) -> PushMessage:
    if view.winner_user_id is None:
        return PUSH_DRAW
    if int(view.winner_user_id) == int(user_id):
        return PUSH_VICTORY
    return PUSH_DEFEAT


class CoopNotifier:
    """Best-effort realtime and push side effects for coop sessions."""

    def __init__(self, *, realtime: RealtimeHub, push: PushNotifier) -> None:
        self._realtime = realtime
        self._push = push

    @property
    def realtime(self) -> RealtimeHub:
        return self._realtime

    def _emit(
        self,
        view: CoopSessionView,
        event: str,
        payload: dict[str, Any],
        *,
        user_ids: Iterable[int] | None = None,
    ) -> bool:
        try:
            return self._realtime.emit_session_event(
                session_id=str(view.session_id),
                participant_ids=list(user_ids) if user_ids is not None else view.participant_ids,
                event=event,
                payload=payload,
            )
        except Exception:
            logger.exception("coop_realtime_emit_failed", session_id=str(view.session_id), event_name=event)
            return False

    async def _push_offline(
        self,
        view: CoopSessionView,
        user_ids: Iterable[int],
        message: PushMessage,
    ) -> int:
        pushed = 0
        for user_id in user_ids:
            if self._realtime.is_user_online(user_id):
                continue
            try:
                enqueued = await self._push.notify(
                    user_id=int(user_id),
                    title=message.title,
                    body=message.body,
                    data={"session_id": str(view.session_id), "type": message.kind},
                )
            except Exception:
                logger.exception(
                    "coop_push_failed",
                    session_id=str(view.session_id),
                    user_id=int(user_id),
                    push_type=message.kind,
                )
                continue
            if enqueued:
                pushed += 1
        return pushed

    async def session_created(self, view: CoopSessionView, *, friend_user_id: int) -> None:
        self._emit(
            view,
            EVENT_INVITE_RECEIVED,
            {
                "session_id": str(view.session_id),
                "by_user_id": str(view.initiator_user_id),
                "ts": view.updated_at.isoformat(),
            },
            user_ids=[friend_user_id],
        )
        self._emit(view, EVENT_SESSION_UPDATED, {"session": view.as_dict()})
        await self._push_offline(view, [friend_user_id], PUSH_INVITE)

    async def settings_updated(self, view: CoopSessionView, *, actor_user_id: int) -> None:
        self._emit(view, EVENT_SESSION_UPDATED, {"session": view.as_dict()})
        others = [user_id for user_id in view.participant_ids if user_id != int(actor_user_id)]
        await self._push_offline(view, others, PUSH_READY)

    async def readiness_changed(self, view: CoopSessionView) -> None:
        self._emit(view, EVENT_SESSION_READY, {"session": view.as_dict()})

    async def session_started(self, view: CoopSessionView) -> None:
        self._emit(
            view,
            EVENT_SESSION_STARTED,
            {
                "session": view.as_dict(),
                "server_started_at": view.started_at.isoformat() if view.started_at else None,
            },
        )
        await self._push_offline(view, view.participant_ids, PUSH_STARTED)

    async def result_submitted(self, view: CoopSessionView, *, user_id: int) -> None:
        payload = {"session": view.as_dict(), "user_id": str(int(user_id))}
        self._emit(view, EVENT_OPPONENT_ANSWERED, payload)
        if len(view.results) < len(view.participant_ids):
            return
        self._emit(view, EVENT_BOTH_ANSWERED, {"session": view.as_dict()})
        self._emit(view, EVENT_SESSION_FINISHED, {"session": view.as_dict()})
        for participant_id in view.participant_ids:
            await self._push_offline(view, [participant_id], finished_message_for(view, participant_id))

    async def session_cancelled(self, view: CoopSessionView) -> None:
        self._emit(view, EVENT_SESSION_CANCELLED, {"session": view.as_dict()})

    async def session_abandoned(self, view: CoopSessionView) -> None:
        self._emit(view, EVENT_OPPONENT_ABANDONED, {"session": view.as_dict()})
        await self._push_offline(view, view.participant_ids, PUSH_ABANDONED)

    def snapshot(
        self,
        view: CoopSessionView,
        *,
        user_id: int | None = None,
        connection: RealtimeConnection | None = None,
    ) -> int:
        try:
            return self._realtime.send_snapshot(
                session_id=str(view.session_id),
                payload={"session": view.as_dict()},
                connection=connection,
                user_id=user_id,
                event=EVENT_SNAPSHOT,
            )
        except Exception:
            logger.exception("coop_snapshot_failed", session_id=str(view.session_id))
            return 0
