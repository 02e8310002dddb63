from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from app.core.config import get_settings
from app.game.coop.errors import CoopError
from app.game.coop.service import CoopSessionService
from app.realtime.hub import RealtimeHub, build_frame
from app.services.internal_auth import resolve_gateway_user_id

router = APIRouter(tags=["realtime"])
logger = structlog.get_logger(__name__)

CLIENT_EVENT_JOIN = "coop.join"
CLIENT_EVENT_SNAPSHOT = "coop.snapshot"
SERVER_EVENT_JOINED = "coop.joined"
SERVER_EVENT_ERROR = "error"


def _error_frame(code: str, message: str) -> dict[str, Any]:
    return build_frame(SERVER_EVENT_ERROR, {"code": code, "message": message})


async def _handle_client_message(
    websocket: WebSocket,
    *,
    service: CoopSessionService,
    hub: RealtimeHub,
    user_id: int,
    message: Any,
) -> None:
    if not isinstance(message, dict):
        await websocket.send_json(_error_frame("E_BAD_FRAME", "Frames must be JSON objects."))
        return
    event = message.get("event")
    data = message.get("data") if isinstance(message.get("data"), dict) else {}
    session_id = data.get("session_id")

    if event not in {CLIENT_EVENT_JOIN, CLIENT_EVENT_SNAPSHOT}:
        await websocket.send_json(_error_frame("E_UNKNOWN_EVENT", "Unknown event."))
        return

    try:
        view = await service.get_session(
            session_id=session_id,
            user_id=user_id,
            connection=websocket,
        )
    except CoopError as exc:
        await websocket.send_json(_error_frame(exc.code, exc.message))
        return

    if event == CLIENT_EVENT_JOIN:
        joined = hub.join_session(
            websocket,
            user_id=user_id,
            session_id=str(view.session_id),
            participant_ids=view.participant_ids,
        )
        if joined:
            await websocket.send_json(
                build_frame(SERVER_EVENT_JOINED, {"session_id": str(view.session_id)})
            )


@router.websocket("/ws")
async def coop_websocket(websocket: WebSocket) -> None:
    user_id = resolve_gateway_user_id(
        websocket,
        expected_token=get_settings().internal_api_token,
        allow_query=True,
    )
    if user_id is None:
        logger.warning("realtime_auth_failed")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    service: CoopSessionService = websocket.app.state.coop_service
    hub: RealtimeHub = websocket.app.state.realtime_hub
    await websocket.accept()
    hub.connect(websocket, user_id=user_id)
    try:
        while True:
            raw_message = await websocket.receive_text()
            try:
                message = json.loads(raw_message)
            except ValueError:
                await websocket.send_json(_error_frame("E_BAD_FRAME", "Invalid JSON."))
                continue
            await _handle_client_message(
                websocket,
                service=service,
                hub=hub,
                user_id=user_id,
                message=message,
            )
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(websocket)
        logger.debug("realtime_disconnected", user_id=user_id)
