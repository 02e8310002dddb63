from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from app.core.config import get_settings
from app.db.session import SessionLocal
from app.workers.celery_app import celery_app

router = APIRouter(tags=["health"])

CHECK_TIMEOUT_SECONDS = 2.0


def _check_result(ok: bool, **extra: Any) -> dict[str, Any]:
    return {"status": "ok" if ok else "failed", **extra}


async def _check_database() -> dict[str, Any]:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return _check_result(False, error=str(exc))
    return _check_result(True)


async def _check_redis() -> dict[str, Any]:
    redis_client = Redis.from_url(get_settings().redis_url)
    try:
        if await redis_client.ping() is not True:
            return _check_result(False, error="unexpected redis ping response")
        return _check_result(True)
    except Exception as exc:
        return _check_result(False, error=str(exc))
    finally:
        await redis_client.aclose()


def _ping_celery_workers() -> dict[str, Any]:
    try:
        inspector = celery_app.control.inspect(timeout=1.0)
        replies = (inspector.ping() if inspector is not None else None) or {}
    except Exception as exc:
        return _check_result(False, error=str(exc))
    if not replies:
        return _check_result(False, error="no push workers responded to ping")
    return _check_result(True, workers=len(replies))


async def _with_timeout(name: str, check: Any) -> dict[str, Any]:
    try:
        return await asyncio.wait_for(check, timeout=CHECK_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        return _check_result(False, error=f"{name} check timed out")


async def collect_dependency_checks() -> dict[str, dict[str, Any]]:
    database, redis, celery = await asyncio.gather(
        _with_timeout("database", _check_database()),
        _with_timeout("redis", _check_redis()),
        _with_timeout("celery", asyncio.to_thread(_ping_celery_workers)),
    )
    return {"database": database, "redis": redis, "celery": celery}


def _runtime_checks(request: Request) -> dict[str, dict[str, Any]]:
    sweeper = getattr(request.app.state, "coop_sweeper", None)
    return {
        "sweeper": {"status": "ok", "running": bool(sweeper is not None and sweeper.running)},
    }


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"status": "ok", "checks": _runtime_checks(request)},
    )


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    checks = await collect_dependency_checks()
    is_ready = all(check.get("status") == "ok" for check in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": {**checks, **_runtime_checks(request)},
        },
    )
