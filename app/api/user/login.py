from fastapi import APIRouter, status

from app.core.deps import SessionDep
from app.schemas.user import LoginRequest, SignupRequest, TokenResponse, UserPublic
from app.services.auth_service import AuthService

router = APIRouter(tags=["auth"])


@router.post("/signup", response_model=UserPublic, status_code=status.HTTP_201_CREATED)
async def signup(data: SignupRequest, db: SessionDep):
    """
    General Sign-up
    """
    user = await AuthService(db).register(data.username, data.name, data.password)
    return UserPublic.model_validate(user)


@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: SessionDep):
    """
    General Login. The returned token authenticates HTTP calls (Bearer) and
    the DM WebSocket (?token=).
    """
    user, access_token = await AuthService(db).authenticate(data.username, data.password)
    return TokenResponse(access_token=access_token, user=UserPublic.model_validate(user))
