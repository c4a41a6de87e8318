"""
Shared data-access helpers used by the service layer.
"""

from typing import List, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.friend import REQUEST_PENDING, FriendRequest, Friendship, canonical_pair
from app.models.user import User


# ============ User ============

class UserCRUD:
    """Lookups for User rows"""

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_username(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()


# ============ Friendship ============

class FriendshipCRUD:
    """Pair-oriented queries for friendships and pending requests"""

    @staticmethod
    async def get_friendship(db: AsyncSession, a: str, b: str) -> Optional[Friendship]:
        low, high = canonical_pair(a, b)
        return await db.get(Friendship, (low, high))

    @staticmethod
    async def get_pending_between(db: AsyncSession, a: str, b: str) -> Optional[FriendRequest]:
        """Pending request in either direction, if any"""
        stmt = select(FriendRequest).where(
            or_(
                and_(FriendRequest.sender_id == a, FriendRequest.receiver_id == b),
                and_(FriendRequest.sender_id == b, FriendRequest.receiver_id == a),
            ),
            FriendRequest.status == REQUEST_PENDING,
        )
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def list_friend_users(db: AsyncSession, user_id: str) -> List[User]:
        stmt = (
            select(User)
            .join(
                Friendship,
                or_(
                    and_(Friendship.user1_id == user_id, Friendship.user2_id == User.id),
                    and_(Friendship.user2_id == user_id, Friendship.user1_id == User.id),
                ),
            )
            .where(User.id != user_id)
            .order_by(User.display_name, User.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
