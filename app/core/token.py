"""
Access tokens (python-jose HS256 JWTs) and the bearer-auth dependency.

The token subject is the user id. HTTP routes read it from the Authorization
header; the WebSocket endpoint receives the same token as a query parameter.
"""

from datetime import timedelta
from typing import Annotated, Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings
from app.core.errors import AuthenticationError
from app.core.time import utcnow

security_scheme = HTTPBearer()


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None, **claims: Any) -> str:
    issued_at = utcnow()
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)

    payload = {**claims, "sub": subject, "iat": issued_at, "exp": issued_at + expires_delta}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: Optional[str]) -> Optional[str]:
    """User id from a well-signed, unexpired token, else None"""
    if not token:
        return None
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    subject = claims.get("sub")
    return subject if isinstance(subject, str) and subject else None


async def get_current_user_id(auth: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)]) -> str:
    user_id = verify_token(auth.credentials)
    if not user_id:
        raise AuthenticationError("Could not validate credentials")
    return user_id


CurrentUserDep = Annotated[str, Depends(get_current_user_id)]
