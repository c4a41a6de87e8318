from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from app.core.deps import CurrentUserDep, SessionDep
from app.core.errors import NotFoundError
from app.schemas.user import UserProfile
from app.services.crud import UserCRUD

router = APIRouter(tags=["profile"])


class UserProfileUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=128)


@router.get("/user/profile", response_model=UserProfile)
async def get_user_profile(db: SessionDep, user_id: CurrentUserDep):
    user = await UserCRUD.get_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    return UserProfile.model_validate(user)


@router.patch("/user/profile", response_model=UserProfile)
async def update_user_profile(
    payload: UserProfileUpdateRequest,
    db: SessionDep,
    user_id: CurrentUserDep,
):
    user = await UserCRUD.get_by_id(db, user_id)
    if not user:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    if payload.display_name is not None:
        user.display_name = payload.display_name
        await db.commit()
        await db.refresh(user)

    return UserProfile.model_validate(user)
