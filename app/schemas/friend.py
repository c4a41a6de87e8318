from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.user import UserPublic


class SendFriendRequestPayload(BaseModel):
    username: str = Field(min_length=1, max_length=64)


class FriendRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    receiver_id: str
    status: str
    created_at: datetime
    updated_at: datetime


class IncomingFriendRequest(BaseModel):
    request_id: str
    sender: UserPublic
    status: str
    created_at: datetime


class OutgoingFriendRequest(BaseModel):
    request_id: str
    receiver: UserPublic
    status: str
    created_at: datetime


class AcceptFriendRequestResponse(BaseModel):
    message: str
    friend: UserPublic


class DeclineFriendRequestResponse(BaseModel):
    message: str
    request: FriendRequestOut


class FriendsListResponse(BaseModel):
    friends: List[UserPublic]
