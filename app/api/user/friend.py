from typing import List

from fastapi import APIRouter, Path, status

from app.core.deps import (
    ConnectionManagerDep,
    CurrentUserDep,
    FriendshipServiceDep,
    SessionDep,
)
from app.core.errors import StoreFailureError
from app.schemas.friend import (
    AcceptFriendRequestResponse,
    DeclineFriendRequestResponse,
    FriendRequestOut,
    FriendsListResponse,
    IncomingFriendRequest,
    OutgoingFriendRequest,
    SendFriendRequestPayload,
)
from app.schemas.user import UserPublic
from app.services.crud import UserCRUD

router = APIRouter(tags=["friend"])


@router.post("/user/friend/request", response_model=FriendRequestOut, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    payload: SendFriendRequestPayload,
    service: FriendshipServiceDep,
    registry: ConnectionManagerDep,
    db: SessionDep,
    user_id: CurrentUserDep,
):
    request = await service.send_request(user_id, payload.username)

    # live notice for the receiver, if online
    sender = await UserCRUD.get_by_id(db, user_id)
    if sender:
        await registry.route_to(
            request.receiver_id,
            {
                "type": "friend.request",
                "data": {
                    "request_id": request.id,
                    "sender": UserPublic.model_validate(sender).model_dump(),
                },
            },
        )

    return FriendRequestOut.model_validate(request)


@router.get("/user/friend/requests/received", response_model=List[IncomingFriendRequest])
async def get_received_friend_requests(service: FriendshipServiceDep, user_id: CurrentUserDep):
    return await service.list_incoming_requests(user_id)


@router.get("/user/friend/requests/sent", response_model=List[OutgoingFriendRequest])
async def get_sent_friend_requests(service: FriendshipServiceDep, user_id: CurrentUserDep):
    return await service.list_outgoing_requests(user_id)


@router.post("/user/friend/request/{request_id}/accept", response_model=AcceptFriendRequestResponse)
async def accept_friend_request(
    service: FriendshipServiceDep,
    registry: ConnectionManagerDep,
    db: SessionDep,
    user_id: CurrentUserDep,
    request_id: str = Path(..., description="The ID of the friend request"),
):
    request = await service.accept_request(request_id, user_id)

    friend = await UserCRUD.get_by_id(db, request.sender_id)
    me = await UserCRUD.get_by_id(db, user_id)
    if not friend or not me:
        # users are never deleted; a missing row means the store is inconsistent
        raise StoreFailureError()

    await registry.route_to(
        request.sender_id,
        {
            "type": "friend.accepted",
            "data": {
                "request_id": request.id,
                "friend": UserPublic.model_validate(me).model_dump(),
            },
        },
    )

    return AcceptFriendRequestResponse(
        message="Friend request accepted.",
        friend=UserPublic.model_validate(friend),
    )


@router.post("/user/friend/request/{request_id}/decline", response_model=DeclineFriendRequestResponse)
async def decline_friend_request(
    service: FriendshipServiceDep,
    user_id: CurrentUserDep,
    request_id: str = Path(..., description="The ID of the friend request"),
):
    request = await service.decline_request(request_id, user_id)
    return DeclineFriendRequestResponse(
        message="Friend request declined.",
        request=FriendRequestOut.model_validate(request),
    )


@router.get("/user/friends", response_model=FriendsListResponse)
async def list_friends(service: FriendshipServiceDep, user_id: CurrentUserDep):
    friends = await service.list_friends(user_id)
    return FriendsListResponse(friends=[UserPublic.model_validate(f) for f in friends])
