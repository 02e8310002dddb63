from __future__ import annotations

import random
from typing import Any

import httpx
import structlog
from celery import Task

from app.core.config import get_settings
from app.db.repo.users_repo import UsersRepo
from app.db.session import SessionLocal
from app.workers.asyncio_runner import run_async_job
from app.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)
settings = get_settings()
PUSH_TIMEOUT_SECONDS = max(1.0, float(settings.push_timeout_seconds))
TASK_MAX_RETRIES = 3
TASK_RETRY_BACKOFF_MAX_SECONDS = 60
RETRY_JITTER_RATIO = 0.25
EXPO_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")

RESULT_SENT = "sent"
RESULT_SKIPPED = "skipped"
RESULT_REJECTED = "rejected"


def _retry_backoff_seconds(
    *,
    next_retry_attempt: int,
    backoff_max_seconds: int,
) -> int:
    safe_retry_attempt = max(1, int(next_retry_attempt))
    safe_backoff_max_seconds = max(1, int(backoff_max_seconds))

    base_delay = min(
        safe_backoff_max_seconds,
        2 ** (safe_retry_attempt - 1),
    )
    max_jitter = max(0, int(base_delay * RETRY_JITTER_RATIO))
    jitter = random.randint(0, max_jitter) if max_jitter > 0 else 0
    return min(safe_backoff_max_seconds, base_delay + jitter)


def is_expo_push_token(token: str | None) -> bool:
    if not token:
        return False
    return token.startswith(EXPO_TOKEN_PREFIXES) and token.endswith("]")


def build_push_message(
    *,
    token: str,
    title: str,
    body: str,
    data: dict[str, Any] | None,
) -> dict[str, Any]:
    return {
        "to": token,
        "title": title,
        "body": body,
        "data": dict(data or {}),
        "sound": "default",
    }


async def _load_push_token(user_id: int) -> str | None:
    async with SessionLocal.begin() as session:
        return await UsersRepo.get_push_token(session, user_id)


async def deliver_push_notification_async(
    *,
    user_id: int,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> str:
    token = await _load_push_token(int(user_id))
    if not is_expo_push_token(token):
        logger.info("push_notification_skipped_no_token", user_id=int(user_id))
        return RESULT_SKIPPED

    message = build_push_message(token=token, title=title, body=body, data=data)
    async with httpx.AsyncClient(timeout=PUSH_TIMEOUT_SECONDS) as client:
        response = await client.post(
            get_settings().push_api_url,
            json=message,
            headers={"Accept": "application/json"},
        )
        response.raise_for_status()
        response_payload = response.json()

    ticket = response_payload.get("data") if isinstance(response_payload, dict) else None
    if isinstance(ticket, list):
        ticket = ticket[0] if ticket else None
    if isinstance(ticket, dict) and ticket.get("status") == "error":
        logger.warning(
            "push_notification_rejected",
            user_id=int(user_id),
            reason=ticket.get("message"),
            details=ticket.get("details"),
        )
        return RESULT_REJECTED

    logger.info("push_notification_sent", user_id=int(user_id))
    return RESULT_SENT


@celery_app.task(
    name="app.workers.tasks.push_notifications.deliver_push_notification",
    bind=True,
    max_retries=TASK_MAX_RETRIES,
    acks_late=True,
)
def deliver_push_notification(
    self: Task,
    user_id: int,
    title: str,
    body: str,
    data: dict[str, Any] | None = None,
) -> str:
    try:
        return run_async_job(
            deliver_push_notification_async(
                user_id=user_id,
                title=title,
                body=body,
                data=data,
            ),
            job_name="deliver_push_notification",
        )
    except httpx.HTTPError as exc:
        next_retry_attempt = int(self.request.retries) + 1
        retry_in_seconds = _retry_backoff_seconds(
            next_retry_attempt=next_retry_attempt,
            backoff_max_seconds=TASK_RETRY_BACKOFF_MAX_SECONDS,
        )
        logger.warning(
            "push_notification_retry_scheduled",
            user_id=int(user_id),
            retry_attempt=next_retry_attempt,
            retry_in_seconds=retry_in_seconds,
            error_type=type(exc).__name__,
        )
        raise self.retry(
            exc=exc,
            countdown=retry_in_seconds,
            max_retries=TASK_MAX_RETRIES,
        )
