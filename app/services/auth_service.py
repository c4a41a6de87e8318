"""
Auth service

Registration, login and credential verification. The rest of the app only
consumes the verified user id this service hands out.
"""

from typing import Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import AuthenticationError, ConflictError, StoreFailureError
from app.core.logging import get_logger
from app.core.security import get_password_hash, verify_password
from app.core.time import utcnow
from app.core.token import create_access_token, verify_token
from app.models.user import User
from app.services.crud import UserCRUD

logger = get_logger(__name__)


class AuthService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, username: str, display_name: str, password: str) -> User:
        if await UserCRUD.get_by_username(self.db, username):
            raise ConflictError("Username already exists.", code="USERNAME_TAKEN")

        user = User(
            id=str(uuid4()),
            username=username,
            display_name=display_name,
            hashed_password=get_password_hash(password),
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("Username already exists.", code="USERNAME_TAKEN")
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("auth.register_failed", username=username)
            raise StoreFailureError()

        logger.info("auth.registered", user_id=user.id, username=username)
        return user

    async def authenticate(self, username: str, password: str) -> Tuple[User, str]:
        """Check credentials, stamp last_login and issue an access token"""
        user = await UserCRUD.get_by_username(self.db, username)
        if not user or not verify_password(password, user.hashed_password):
            logger.info("auth.login_failed", username=username)
            raise AuthenticationError("Invalid username or password")

        user.last_login = utcnow()
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception("auth.last_login_failed", user_id=user.id)
            raise StoreFailureError()

        token = create_access_token(user.id, username=user.username)
        logger.info("auth.login", user_id=user.id)
        return user, token

    async def verify_credential(self, token: str) -> str:
        """Return the user id behind a valid, unexpired token for an existing user"""
        if not token:
            raise AuthenticationError("Authentication token missing")

        user_id = verify_token(token)
        if not user_id:
            raise AuthenticationError("Invalid or expired token")

        if not await UserCRUD.get_by_id(self.db, user_id):
            raise AuthenticationError("Invalid or expired token")
        return user_id
