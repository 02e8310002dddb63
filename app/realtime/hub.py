from __future__ import annotations

import asyncio
import random
import weakref
from collections.abc import Awaitable, Callable, Iterable
from time import monotonic
from typing import Any, Protocol

import structlog

from app.core.config import get_settings
from app.realtime.throttle import EventThrottle

logger = structlog.get_logger(__name__)

RETRY_JITTER_RATIO = 0.2

_USER_TABLE = "user"
_SESSION_TABLE = "session"


class RealtimeConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


def retry_backoff_seconds(
    *,
    attempt: int,
    base_seconds: float,
    max_seconds: float,
) -> float:
    safe_attempt = max(1, int(attempt))
    safe_max_seconds = max(0.0, float(max_seconds))
    base_delay = min(safe_max_seconds, max(0.0, float(base_seconds)) * 2 ** (safe_attempt - 1))
    jitter = random.uniform(0, base_delay * RETRY_JITTER_RATIO) if base_delay > 0 else 0.0
    return min(safe_max_seconds, base_delay + jitter)


def build_frame(event: str, payload: dict[str, Any]) -> dict[str, Any]:
    return {"event": event, "data": payload}


class RealtimeHub:
    """Registry of live connections and best-effort event fan-out.

    Connections are weakly referenced from two lookup tables, one keyed by
    user id and one keyed by session id. A connection that is closed or
    garbage collected disappears from both without any explicit owner.
    """

    def __init__(
        self,
        *,
        throttle_seconds: float,
        send_attempts: int,
        backoff_base_seconds: float,
        backoff_max_seconds: float,
        clock: Callable[[], float] = monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._user_connections: dict[int, weakref.WeakSet[Any]] = {}
        self._session_connections: dict[str, weakref.WeakSet[Any]] = {}
        self._memberships: weakref.WeakKeyDictionary[Any, set[tuple[str, Any]]] = (
            weakref.WeakKeyDictionary()
        )
        self._throttle = EventThrottle(throttle_seconds, clock=clock)
        self._send_attempts = max(1, int(send_attempts))
        self._backoff_base_seconds = backoff_base_seconds
        self._backoff_max_seconds = backoff_max_seconds
        self._sleep = sleep
        self._pending: set[asyncio.Task[bool]] = set()

    @classmethod
    def from_settings(cls) -> RealtimeHub:
        settings = get_settings()
        return cls(
            throttle_seconds=max(0.0, float(settings.realtime_throttle_seconds)),
            send_attempts=max(1, int(settings.realtime_send_attempts)),
            backoff_base_seconds=max(0.0, float(settings.realtime_backoff_base_seconds)),
            backoff_max_seconds=max(0.0, float(settings.realtime_backoff_max_seconds)),
        )

    def _add(self, table: str, key: Any, connection: RealtimeConnection) -> None:
        lookup = self._user_connections if table == _USER_TABLE else self._session_connections
        lookup.setdefault(key, weakref.WeakSet()).add(connection)
        memberships = self._memberships.get(connection)
        if memberships is None:
            memberships = set()
            self._memberships[connection] = memberships
        memberships.add((table, key))

    def _live(self, table: str, key: Any) -> list[RealtimeConnection]:
        lookup = self._user_connections if table == _USER_TABLE else self._session_connections
        connections = lookup.get(key)
        if connections is None:
            return []
        live = list(connections)
        if not live:
            lookup.pop(key, None)
        return live

    def connect(self, connection: RealtimeConnection, *, user_id: int) -> None:
        self._add(_USER_TABLE, int(user_id), connection)
        logger.debug("realtime_connected", user_id=int(user_id))

    def disconnect(self, connection: RealtimeConnection) -> None:
        memberships = self._memberships.pop(connection, set())
        for table, key in memberships:
            lookup = self._user_connections if table == _USER_TABLE else self._session_connections
            connections = lookup.get(key)
            if connections is None:
                continue
            connections.discard(connection)
            if not connections:
                lookup.pop(key, None)

    def join_session(
        self,
        connection: RealtimeConnection,
        *,
        user_id: int,
        session_id: str,
        participant_ids: Iterable[int],
    ) -> bool:
        if int(user_id) not in {int(participant_id) for participant_id in participant_ids}:
            logger.warning("realtime_join_rejected", user_id=int(user_id), session_id=session_id)
            return False
        self._add(_SESSION_TABLE, str(session_id), connection)
        return True

    def is_user_online(self, user_id: int) -> bool:
        return bool(self._live(_USER_TABLE, int(user_id)))

    def session_connections(self, session_id: str) -> list[RealtimeConnection]:
        return self._live(_SESSION_TABLE, str(session_id))

    def _targets(
        self,
        *,
        session_id: str,
        participant_ids: Iterable[int],
    ) -> list[RealtimeConnection]:
        targets: list[RealtimeConnection] = []
        seen: set[int] = set()
        candidates = [
            *(
                connection
                for participant_id in participant_ids
                for connection in self._live(_USER_TABLE, int(participant_id))
            ),
            *self._live(_SESSION_TABLE, str(session_id)),
        ]
        for connection in candidates:
            if id(connection) in seen:
                continue
            seen.add(id(connection))
            targets.append(connection)
        return targets

    def emit_session_event(
        self,
        *,
        session_id: str,
        participant_ids: Iterable[int],
        event: str,
        payload: dict[str, Any],
    ) -> bool:
        if not self._throttle.allow((str(session_id), event)):
            logger.info("realtime_event_throttled", session_id=str(session_id), event_name=event)
            return False
        frame = build_frame(event, payload)
        targets = self._targets(session_id=str(session_id), participant_ids=participant_ids)
        for connection in targets:
            self._schedule(connection, frame, event=event)
        logger.info(
            "realtime_event_emitted",
            session_id=str(session_id),
            event_name=event,
            connections=len(targets),
        )
        return True

    def send_snapshot(
        self,
        *,
        session_id: str,
        payload: dict[str, Any],
        connection: RealtimeConnection | None = None,
        user_id: int | None = None,
        event: str = "coop:snapshot",
    ) -> int:
        if connection is not None:
            targets = [connection]
        elif user_id is not None:
            targets = self._live(_USER_TABLE, int(user_id))
        else:
            targets = []
        frame = build_frame(event, payload)
        for target in targets:
            self._schedule(target, frame, event=event)
        return len(targets)

    def _schedule(self, connection: RealtimeConnection, frame: dict[str, Any], *, event: str) -> None:
        task = asyncio.create_task(self._send_with_retry(connection, frame, event=event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send_with_retry(
        self,
        connection: RealtimeConnection,
        frame: dict[str, Any],
        *,
        event: str,
    ) -> bool:
        for attempt in range(1, self._send_attempts + 1):
            try:
                await connection.send_json(frame)
                return True
            except Exception as exc:
                if attempt >= self._send_attempts:
                    logger.warning(
                        "realtime_delivery_failed",
                        event_name=event,
                        attempts=attempt,
                        error_type=type(exc).__name__,
                    )
                    return False
                await self._sleep(
                    retry_backoff_seconds(
                        attempt=attempt,
                        base_seconds=self._backoff_base_seconds,
                        max_seconds=self._backoff_max_seconds,
                    )
                )
        return False

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def reset(self) -> None:
        self._throttle.reset()
        self._user_connections.clear()
        self._session_connections.clear()
        self._memberships.clear()
