from __future__ import annotations

import structlog
from fastapi import HTTPException, Request

from app.core.config import get_settings
from app.game.coop.errors import CoopError
from app.game.coop.service import CoopSessionService
from app.game.coop.types import CoopSessionView, LaunchResult
from app.services.internal_auth import resolve_gateway_user_id

from .coop_models import (
    CoopLaunchResponse,
    CoopQuestionResponse,
    CoopSessionEnvelope,
    CoopSessionResponse,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS_BY_KIND: dict[str, int] = {
    "validation": 400,
    "permission": 403,
    "not_found": 404,
    "conflict": 409,
    "resource_unavailable": 422,
    "transient": 503,
}


def get_coop_service(request: Request) -> CoopSessionService:
    return request.app.state.coop_service


def require_gateway_user(request: Request) -> int:
    user_id = resolve_gateway_user_id(
        request,
        expected_token=get_settings().internal_api_token,
    )
    if user_id is None:
        logger.warning("coop_gateway_auth_failed", path=request.url.path)
        raise HTTPException(status_code=401, detail={"code": "E_UNAUTHORIZED"})
    return user_id


def coop_http_error(exc: CoopError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS_BY_KIND.get(exc.kind, 400),
        detail={"code": exc.code, "message": exc.message},
    )


def as_session_envelope(view: CoopSessionView) -> CoopSessionEnvelope:
    return CoopSessionEnvelope(session=CoopSessionResponse.model_validate(view.as_dict()))


def as_launch_response(result: LaunchResult) -> CoopLaunchResponse:
    return CoopLaunchResponse(
        session=CoopSessionResponse.model_validate(result.session.as_dict()),
        questions=[
            CoopQuestionResponse.model_validate(question.as_dict())
            for question in result.questions
        ],
    )
