from app.models.base import Base
from app.models.friend import FriendRequest, Friendship
from app.models.message import Message
from app.models.user import User

__all__ = [
    "Base",
    "User",
    "FriendRequest",
    "Friendship",
    "Message",
]
