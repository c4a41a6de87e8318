from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.time import utcnow
from app.models.base import Base, TimestampMixin

REQUEST_PENDING = "pending"
REQUEST_ACCEPTED = "accepted"
REQUEST_DECLINED = "declined"

REQUEST_STATUSES = (REQUEST_PENDING, REQUEST_ACCEPTED, REQUEST_DECLINED)


def canonical_pair(a: str, b: str) -> Tuple[str, str]:
    """Order an unordered user pair so the smaller id comes first"""
    return (a, b) if a < b else (b, a)


def pair_key(a: str, b: str) -> str:
    low, high = canonical_pair(a, b)
    return f"{low}:{high}"


class FriendRequest(Base, TimestampMixin):
    __tablename__ = "friend_requests"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    sender_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    receiver_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)

    # status: 'pending' | 'accepted' | 'declined'
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=REQUEST_PENDING)

    # "<low>:<high>" while pending, NULL once accepted/declined.
    # The unique index allows many NULLs, so only one pending row per pair can exist.
    pending_key: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)

    __table_args__ = (
        CheckConstraint("sender_id <> receiver_id", name="chk_friend_requests_not_self"),
        CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in REQUEST_STATUSES) + ")",
            name="chk_friend_requests_status",
        ),
        Index("uq_friend_requests_pending_pair", "pending_key", unique=True),
        Index("idx_friend_requests_receiver", "receiver_id", "status"),
        Index("idx_friend_requests_sender", "sender_id", "status"),
    )


class Friendship(Base):
    __tablename__ = "friendships"

    # canonical ordering: user1_id < user2_id, one row per unordered pair
    user1_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    user2_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("user1_id < user2_id", name="chk_friendships_order"),
        Index("idx_friendships_user2", "user2_id"),
    )