"""
Direct message service

Persist first, then push the stored record to the live connections of both
participants. Persistence is the success criterion; live delivery is best effort
and clients re-fetch history on reconnect.
"""

from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    StoreFailureError,
)
from app.core.logging import LatencyLogger, get_logger
from app.core.time import utcnow
from app.models.message import KIND_IMAGE, KIND_TEXT, MESSAGE_KINDS, Message
from app.schemas.message import MessageOut
from app.services.connection_manager import ConnectionManager
from app.services.crud import FriendshipCRUD, UserCRUD

logger = get_logger(__name__)

DM_EVENT = "dm.chat"


class MessageService:
    def __init__(self, db: AsyncSession, registry: Optional[ConnectionManager] = None):
        self.db = db
        self.registry = registry

    async def send(
        self,
        sender_id: str,
        receiver_id: str,
        kind: str = KIND_TEXT,
        content: Optional[str] = None,
        image_payload: Optional[str] = None,
    ) -> MessageOut:
        content, image_payload = self._validate(sender_id, receiver_id, kind, content, image_payload)

        receiver = await UserCRUD.get_by_id(self.db, receiver_id)
        if not receiver:
            raise NotFoundError("Receiver not found.", code="USER_NOT_FOUND")

        if settings.require_friendship_for_messages:
            if await FriendshipCRUD.get_friendship(self.db, sender_id, receiver_id) is None:
                raise PermissionDeniedError("You can only send messages to friends.")

        message = Message(
            sender_id=sender_id,
            receiver_id=receiver_id,
            kind=kind,
            content=content,
            image_payload=image_payload,
            created_at=utcnow(),
        )
        self.db.add(message)
        try:
            with LatencyLogger("dm.persist", logger):
                await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("dm.store_failed", sender_id=sender_id, receiver_id=receiver_id)
            raise StoreFailureError()

        stored = MessageOut.model_validate(message)
        logger.info(
            "dm.saved",
            message_id=stored.id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            kind=kind,
        )

        await self._deliver(stored)
        return stored

    async def fetch_history(
        self,
        user_id: str,
        friend_id: str,
        limit: Optional[int] = None,
        before_id: Optional[int] = None,
    ) -> List[MessageOut]:
        """
        Messages between the pair, oldest first. With limit, returns the newest
        `limit` messages (older than before_id when given), still oldest first.
        """
        if not await UserCRUD.get_by_id(self.db, friend_id):
            raise NotFoundError("User not found.", code="USER_NOT_FOUND")

        stmt = select(Message).where(
            or_(
                and_(Message.sender_id == user_id, Message.receiver_id == friend_id),
                and_(Message.sender_id == friend_id, Message.receiver_id == user_id),
            )
        )
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)

        if limit is not None:
            stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
            result = await self.db.execute(stmt)
            messages = list(reversed(result.scalars().all()))
        else:
            stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc())
            result = await self.db.execute(stmt)
            messages = list(result.scalars().all())

        return [MessageOut.model_validate(m) for m in messages]

    async def _deliver(self, message: MessageOut) -> None:
        if self.registry is None:
            return

        payload = {"type": DM_EVENT, "data": message.model_dump(mode="json")}
        try:
            counts = await self.registry.route_to_many(
                [message.receiver_id, message.sender_id], payload
            )
        except Exception:
            # delivery is best effort; the message is already stored
            logger.exception("dm.route.failed", message_id=message.id)
            return

        logger.info(
            "dm.routed",
            message_id=message.id,
            receiver_connections=counts.get(message.receiver_id, 0),
            sender_connections=counts.get(message.sender_id, 0),
        )

    def _validate(self, sender_id, receiver_id, kind, content, image_payload):
        if not isinstance(sender_id, str) or not sender_id:
            raise InvalidInputError("sender_id is required.")
        if not isinstance(receiver_id, str) or not receiver_id:
            raise InvalidInputError("receiver_id must be a non-empty string.")
        if sender_id == receiver_id:
            raise InvalidInputError("You cannot send a message to yourself.", code="SELF_MESSAGE")
        if kind not in MESSAGE_KINDS:
            raise InvalidInputError(
                f"kind must be one of {', '.join(MESSAGE_KINDS)}.",
                details={"kind": kind if isinstance(kind, str) else None},
            )
        for field, value in (("content", content), ("image_payload", image_payload)):
            if value is not None and not isinstance(value, str):
                raise InvalidInputError(f"{field} must be a string.", details={"field": field})

        if kind == KIND_TEXT:
            if image_payload:
                raise InvalidInputError("A text message cannot carry an image payload.")
            # whitespace-only counts as empty; the text itself is stored as sent
            if not content or not content.strip():
                raise InvalidInputError("Message content is required.")
            if len(content) > settings.message_max_length:
                raise InvalidInputError(
                    f"Message content exceeds {settings.message_max_length} characters.",
                    code="MESSAGE_TOO_LONG",
                    details={"max_length": settings.message_max_length, "length": len(content)},
                )
            return content, None

        if content:
            raise InvalidInputError("An image message cannot carry text content.")
        if not image_payload:
            raise InvalidInputError("Image payload is required.")
        if len(image_payload) > settings.image_payload_max_length:
            raise InvalidInputError(
                "Image payload is too large.",
                code="PAYLOAD_TOO_LARGE",
                details={"max_length": settings.image_payload_max_length},
            )
        return None, image_payload
