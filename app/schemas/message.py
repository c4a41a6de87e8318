from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.core.time import to_utc_iso


class MessageOut(BaseModel):
    """Canonical wire form of a stored message (REST and WebSocket)"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_id: str
    receiver_id: str
    kind: str
    content: Optional[str] = None
    image_payload: Optional[str] = None
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> Optional[str]:
        return to_utc_iso(value)


class SendMessagePayload(BaseModel):
    kind: Literal["text", "image"] = "text"
    content: Optional[str] = None
    image_payload: Optional[str] = None


class MessagesListResponse(BaseModel):
    messages: List[MessageOut]


class ChatEvent(SendMessagePayload):
    """Inbound `dm.chat` WebSocket event"""

    type: Literal["dm.chat"]
    receiver_id: str = Field(min_length=1)
    sender_id: Optional[str] = None
