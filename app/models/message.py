from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column

from app.core.time import utcnow
from app.models.base import Base

KIND_TEXT = "text"
KIND_IMAGE = "image"

MESSAGE_KINDS = (KIND_TEXT, KIND_IMAGE)

# MySQL TEXT stops at 64 KiB; MEDIUMTEXT holds 16 MiB, above image_payload_max_length
ImagePayloadText = Text().with_variant(mysql.MEDIUMTEXT(), "mysql")


class Message(Base):
    __tablename__ = "messages"

    # server-assigned; also the tie-breaker for messages sharing a created_at
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )

    sender_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    # kind: text | image
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=KIND_TEXT)
    content: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_payload: Mapped[Optional[str]] = mapped_column(ImagePayloadText, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("kind IN ('text', 'image')", name="chk_messages_kind"),
        CheckConstraint(
            "(kind = 'text' AND content IS NOT NULL AND image_payload IS NULL) OR "
            "(kind = 'image' AND image_payload IS NOT NULL AND content IS NULL)",
            name="chk_messages_payload",
        ),
        Index("idx_messages_pair_created", "sender_id", "receiver_id", "created_at"),
        Index("idx_messages_receiver_created", "receiver_id", "created_at"),
    )
