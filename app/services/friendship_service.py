"""
Friendship service

Request / accept / decline lifecycle between two users. Pair invariants are
enforced by the store (unique pending_key, canonical friendship primary key);
the reads here only pick the error message.
"""

from typing import List
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AppError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    StoreFailureError,
)
from app.core.logging import LatencyLogger, get_logger
from app.core.time import utcnow
from app.models.friend import (
    REQUEST_ACCEPTED,
    REQUEST_DECLINED,
    REQUEST_PENDING,
    FriendRequest,
    Friendship,
    canonical_pair,
    pair_key,
)
from app.models.user import User
from app.schemas.friend import IncomingFriendRequest, OutgoingFriendRequest
from app.schemas.user import UserPublic
from app.services.crud import FriendshipCRUD, UserCRUD

logger = get_logger(__name__)


class FriendshipService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def send_request(self, sender_id: str, receiver_username: str) -> FriendRequest:
        receiver = await UserCRUD.get_by_username(self.db, receiver_username)
        if not receiver:
            raise NotFoundError("User not found.", code="USER_NOT_FOUND")

        if receiver.id == sender_id:
            raise InvalidInputError(
                "You cannot send a friend request to yourself.", code="SELF_REQUEST"
            )

        if await FriendshipCRUD.get_friendship(self.db, sender_id, receiver.id):
            raise ConflictError("You are already friends.", code="ALREADY_FRIENDS")

        existing = await FriendshipCRUD.get_pending_between(self.db, sender_id, receiver.id)
        if existing:
            if existing.sender_id == sender_id:
                raise ConflictError(
                    "You have already sent a friend request.",
                    code="DUPLICATE_PENDING",
                    details={"request_id": existing.id, "direction": "outgoing"},
                )
            raise ConflictError(
                "This user has already sent you a friend request. Please check your inbox.",
                code="DUPLICATE_PENDING",
                details={"request_id": existing.id, "direction": "incoming"},
            )

        request = FriendRequest(
            id=str(uuid4()),
            sender_id=sender_id,
            receiver_id=receiver.id,
            status=REQUEST_PENDING,
            pending_key=pair_key(sender_id, receiver.id),
        )
        self.db.add(request)

        try:
            with LatencyLogger("friend.request.insert", logger):
                await self.db.commit()
        except IntegrityError:
            # lost a race against a concurrent request for the same pair
            await self.db.rollback()
            raise ConflictError(
                "A friend request between these users already exists.",
                code="ALREADY_EXISTS",
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("friend.request.store_failed", sender_id=sender_id)
            raise StoreFailureError()

        logger.info(
            "friend.request.sent",
            request_id=request.id,
            sender_id=sender_id,
            receiver_id=receiver.id,
        )
        return request

    async def list_incoming_requests(self, user_id: str) -> List[IncomingFriendRequest]:
        stmt = (
            select(FriendRequest, User)
            .join(User, FriendRequest.sender_id == User.id)
            .where(
                FriendRequest.receiver_id == user_id,
                FriendRequest.status == REQUEST_PENDING,
            )
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id)
        )
        result = await self.db.execute(stmt)
        return [
            IncomingFriendRequest(
                request_id=req.id,
                sender=UserPublic.model_validate(sender),
                status=req.status,
                created_at=req.created_at,
            )
            for req, sender in result.all()
        ]

    async def list_outgoing_requests(self, user_id: str) -> List[OutgoingFriendRequest]:
        stmt = (
            select(FriendRequest, User)
            .join(User, FriendRequest.receiver_id == User.id)
            .where(
                FriendRequest.sender_id == user_id,
                FriendRequest.status == REQUEST_PENDING,
            )
            .order_by(FriendRequest.created_at.desc(), FriendRequest.id)
        )
        result = await self.db.execute(stmt)
        return [
            OutgoingFriendRequest(
                request_id=req.id,
                receiver=UserPublic.model_validate(receiver),
                status=req.status,
                created_at=req.created_at,
            )
            for req, receiver in result.all()
        ]

    async def accept_request(self, request_id: str, acting_user_id: str) -> FriendRequest:
        """
        Mark the request accepted and create the friendship in one transaction.

        The status change is a conditional UPDATE, so of two concurrent accepts
        only one sees rowcount == 1; the other gets NotFoundError.
        """
        try:
            request = await self._transition(request_id, acting_user_id, REQUEST_ACCEPTED)

            low, high = canonical_pair(request.sender_id, request.receiver_id)
            if await self.db.get(Friendship, (low, high)) is None:
                self.db.add(Friendship(user1_id=low, user2_id=high, created_at=utcnow()))

            with LatencyLogger("friend.request.accept", logger):
                await self.db.commit()
        except AppError:
            await self.db.rollback()
            raise
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(
                "These users became friends concurrently.", code="ALREADY_EXISTS"
            )
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("friend.request.accept_failed", request_id=request_id)
            raise StoreFailureError()

        logger.info(
            "friend.request.accepted",
            request_id=request.id,
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
        )
        return request

    async def decline_request(self, request_id: str, acting_user_id: str) -> FriendRequest:
        try:
            request = await self._transition(request_id, acting_user_id, REQUEST_DECLINED)
            await self.db.commit()
        except AppError:
            await self.db.rollback()
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("friend.request.decline_failed", request_id=request_id)
            raise StoreFailureError()

        logger.info("friend.request.declined", request_id=request.id, receiver_id=acting_user_id)
        return request

    async def list_friends(self, user_id: str) -> List[User]:
        return await FriendshipCRUD.list_friend_users(self.db, user_id)

    async def are_friends(self, a: str, b: str) -> bool:
        return await FriendshipCRUD.get_friendship(self.db, a, b) is not None

    async def _transition(self, request_id: str, acting_user_id: str, new_status: str) -> FriendRequest:
        """
        pending -> new_status, only for the receiver. Must run inside the
        caller's transaction; the caller commits or rolls back.
        """
        stmt = (
            update(FriendRequest)
            .where(
                FriendRequest.id == request_id,
                FriendRequest.receiver_id == acting_user_id,
                FriendRequest.status == REQUEST_PENDING,
            )
            .values(status=new_status, pending_key=None, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise NotFoundError(
                "Friend request not found or already processed.",
                code="REQUEST_NOT_FOUND",
            )

        refreshed = await self.db.execute(
            select(FriendRequest)
            .where(FriendRequest.id == request_id)
            .execution_options(populate_existing=True)
        )
        return refreshed.scalar_one()
