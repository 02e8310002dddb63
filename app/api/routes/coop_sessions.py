from __future__ import annotations

from fastapi import APIRouter, Depends

from app.game.coop.errors import CoopError
from app.game.coop.service import CoopSessionService
from app.game.coop.types import SubmittedAnswer

from .coop_helpers import (
    as_launch_response,
    as_session_envelope,
    coop_http_error,
    get_coop_service,
    require_gateway_user,
)
from .coop_models import (
    CoopCreateRequest,
    CoopFiltersRequest,
    CoopLaunchResponse,
    CoopReadyRequest,
    CoopSessionEnvelope,
    CoopSubmitRequest,
)

router = APIRouter(prefix="/coop", tags=["coop"])


@router.post("/sessions", response_model=CoopSessionEnvelope, status_code=201)
async def create_session(
    payload: CoopCreateRequest,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    try:
        result = await service.create_session(
            initiator_user_id=user_id,
            friend_user_id=payload.friend_id,
        )
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(result.session)


@router.get("/sessions/{session_id}", response_model=CoopSessionEnvelope)
async def get_session(
    session_id: str,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    try:
        view = await service.get_session(session_id=session_id, user_id=user_id)
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(view)


@router.patch("/sessions/{session_id}/ready", response_model=CoopSessionEnvelope)
async def set_ready(
    session_id: str,
    payload: CoopReadyRequest,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    try:
        view = await service.set_readiness(
            session_id=session_id,
            user_id=user_id,
            ready=payload.ready,
        )
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(view)


@router.patch("/sessions/{session_id}/filters", response_model=CoopSessionEnvelope)
async def set_filters(
    session_id: str,
    payload: CoopFiltersRequest,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    try:
        view = await service.set_filters(
            session_id=session_id,
            user_id=user_id,
            filters=payload.filters.model_dump() if payload.filters is not None else None,
            correction_mode=payload.correction_mode,
            level=payload.level,
            count=payload.count,
        )
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(view)


@router.post("/sessions/{session_id}/launch", response_model=CoopLaunchResponse)
async def launch_session(
    session_id: str,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopLaunchResponse:
    try:
        result = await service.launch_session(session_id=session_id, user_id=user_id)
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_launch_response(result)


@router.patch("/sessions/{session_id}/result", response_model=CoopSessionEnvelope)
async def submit_result(
    session_id: str,
    payload: CoopSubmitRequest,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    answers = [
        SubmittedAnswer(
            question_id=answer.question_id,
            selected_option_indexes=tuple(answer.selected_option_indexes),
        )
        for answer in payload.answers
    ]
    try:
        view = await service.submit_result(
            session_id=session_id,
            user_id=user_id,
            answers=answers,
            duration_ms=payload.duration_ms,
        )
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(view)


@router.delete("/sessions/{session_id}", response_model=CoopSessionEnvelope)
async def cancel_session(
    session_id: str,
    user_id: int = Depends(require_gateway_user),
    service: CoopSessionService = Depends(get_coop_service),
) -> CoopSessionEnvelope:
    try:
        view = await service.cancel_session(session_id=session_id, user_id=user_id)
    except CoopError as exc:
        raise coop_http_error(exc) from exc
    return as_session_envelope(view)
