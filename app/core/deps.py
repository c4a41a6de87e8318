"""
Dependency Injection

FastAPI dependencies for routes.
"""

from typing import Annotated

from fastapi import Depends
from fastapi.requests import HTTPConnection
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.token import CurrentUserDep, get_current_user_id, security_scheme  # noqa: F401
from app.infra.db import get_db
from app.services.connection_manager import ConnectionManager
from app.services.friendship_service import FriendshipService
from app.services.message_service import MessageService


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    """The per-app registry stored on app.state by create_app"""
    return conn.app.state.connection_manager


# Type aliases for common dependencies
SessionDep = Annotated[AsyncSession, Depends(get_db)]
ConnectionManagerDep = Annotated[ConnectionManager, Depends(get_connection_manager)]


def get_friendship_service(db: SessionDep) -> FriendshipService:
    return FriendshipService(db)


def get_message_service(db: SessionDep, registry: ConnectionManagerDep) -> MessageService:
    return MessageService(db, registry)


FriendshipServiceDep = Annotated[FriendshipService, Depends(get_friendship_service)]
MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
