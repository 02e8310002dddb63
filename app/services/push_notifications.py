from __future__ import annotations

import asyncio
from typing import Any

import structlog

from app.core.config import get_settings
from app.workers.tasks.push_notifications import deliver_push_notification

logger = structlog.get_logger(__name__)


def _is_celery_task(task_obj: object) -> bool:
    return type(task_obj).__module__.startswith("celery.")


class PushNotifier:
    def __init__(self, *, enqueue_timeout_seconds: float | None = None) -> None:
        resolved_timeout = (
            enqueue_timeout_seconds
            if enqueue_timeout_seconds is not None
            else get_settings().push_enqueue_timeout_seconds
        )
        self._enqueue_timeout_seconds = max(0.1, float(resolved_timeout))

    async def notify(
        self,
        *,
        user_id: int,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> bool:
        payload = dict(data or {})

        def enqueue_call() -> object:
            return deliver_push_notification.delay(
                user_id=int(user_id),
                title=title,
                body=body,
                data=payload,
            )

        try:
            if _is_celery_task(deliver_push_notification):
                await asyncio.wait_for(
                    asyncio.to_thread(enqueue_call),
                    timeout=self._enqueue_timeout_seconds,
                )
            else:
                enqueue_call()
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "push_enqueue_timeout",
                user_id=int(user_id),
                enqueue_timeout_seconds=self._enqueue_timeout_seconds,
            )
            return False
        except Exception as exc:
            logger.warning(
                "push_enqueue_failed",
                user_id=int(user_id),
                error_type=type(exc).__name__,
            )
            return False
