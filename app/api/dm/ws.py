import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.deps import ConnectionManagerDep
from app.core.errors import AppError, InvalidInputError, PermissionDeniedError
from app.core.logging import get_logger
from app.infra.db import get_session_factory
from app.schemas.message import ChatEvent
from app.services.auth_service import AuthService
from app.services.connection_manager import ConnectionManager
from app.services.message_service import DM_EVENT, MessageService

router = APIRouter(tags=["dm-ws"])
logger = get_logger("app.ws")

# RFC 6455 policy violation
WS_POLICY_VIOLATION = 1008
WS_INTERNAL_ERROR = 1011


@router.websocket("/dm/ws")
async def dm_websocket(
    websocket: WebSocket,
    registry: ConnectionManagerDep,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    token: Optional[str] = Query(None),
):
    """
    Live DM channel for the authenticated user.
    Accepts first so the auth error can be reported, then closes unless the
    token verifies. Only verified connections reach the registry.
    """
    await websocket.accept()

    try:
        async with session_factory() as db:
            user_id = await AuthService(db).verify_credential(token)
    except AppError as exc:
        logger.info("ws.auth_failed", reason=exc.message)
        await websocket.send_json({"type": "error", **exc.to_dict()})
        await websocket.close(code=WS_POLICY_VIOLATION)
        return

    await registry.register(user_id, websocket)
    logger.info("ws.connected", user_id=user_id)

    try:
        await websocket.send_json({"type": "connected", "data": {"user_id": user_id}})

        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await _send_error(websocket, InvalidInputError("Invalid JSON", code="INVALID_JSON"))
                continue

            if not isinstance(data, dict):
                await _send_error(websocket, InvalidInputError("Event must be a JSON object"))
                continue

            msg_type = data.get("type")

            if msg_type == DM_EVENT:
                await handle_chat_event(websocket, registry, session_factory, user_id, data)
            elif msg_type == "ping":
                await websocket.send_json({"type": "pong"})
            else:
                await _send_error(
                    websocket,
                    InvalidInputError(
                        "Unknown event type", code="UNKNOWN_TYPE", details={"type": msg_type}
                    ),
                )

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.exception("ws.error", user_id=user_id, error=str(e))
        try:
            await websocket.close(code=WS_INTERNAL_ERROR)
        except RuntimeError:
            # already closed by the peer
            pass
    finally:
        await registry.unregister(websocket)
        logger.info("ws.disconnected", user_id=user_id)


async def handle_chat_event(
    websocket: WebSocket,
    registry: ConnectionManager,
    session_factory: async_sessionmaker[AsyncSession],
    user_id: str,
    data: dict,
) -> None:
    """
    Persist and route one chat event. The sender is always the socket's
    authenticated user; a conflicting sender_id is refused.
    """
    try:
        event = ChatEvent.model_validate(data)
    except ValidationError as exc:
        errors = jsonable_encoder(exc.errors(include_url=False))
        await _send_error(
            websocket, InvalidInputError("Invalid dm.chat event", details={"errors": errors})
        )
        return

    if event.sender_id is not None and event.sender_id != user_id:
        await _send_error(
            websocket, PermissionDeniedError("sender_id does not match the authenticated user")
        )
        return

    try:
        async with session_factory() as db:
            await MessageService(db, registry).send(
                user_id,
                event.receiver_id,
                kind=event.kind,
                content=event.content,
                image_payload=event.image_payload,
            )
    except AppError as exc:
        logger.info("ws.chat_rejected", user_id=user_id, code=exc.code)
        await _send_error(websocket, exc)


async def _send_error(websocket: WebSocket, exc: AppError) -> None:
    await websocket.send_json({"type": "error", **exc.to_dict()})
