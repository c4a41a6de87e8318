from typing import Optional

from fastapi import APIRouter, Query, status

from app.core.deps import CurrentUserDep, MessageServiceDep
from app.schemas.message import MessageOut, MessagesListResponse, SendMessagePayload

router = APIRouter(tags=["dm"])


@router.get("/dm/{friend_id}/messages", response_model=MessagesListResponse)
async def get_messages(
    friend_id: str,
    service: MessageServiceDep,
    current_user: CurrentUserDep,
    limit: Optional[int] = Query(None, ge=1, le=500),
    before_id: Optional[int] = Query(None, ge=1),
):
    """Conversation history with friend_id, oldest first"""
    messages = await service.fetch_history(current_user, friend_id, limit=limit, before_id=before_id)
    return MessagesListResponse(messages=messages)


@router.post("/dm/{friend_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    friend_id: str,
    payload: SendMessagePayload,
    service: MessageServiceDep,
    current_user: CurrentUserDep,
):
    """
    HTTP twin of the WebSocket `dm.chat` event; the stored message is pushed
    to both participants' live connections.
    """
    return await service.send(
        current_user,
        friend_id,
        kind=payload.kind,
        content=payload.content,
        image_payload=payload.image_payload,
    )
