from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UserPublic(BaseModel):
    """User fields that are safe to show to other users"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    display_name: str


class UserProfile(UserPublic):
    last_login: Optional[datetime] = None
    created_at: datetime


class SignupRequest(BaseModel):
    username: str = Field(min_length=3, max_length=64, pattern=r"^[A-Za-z0-9_.-]+$")
    name: str = Field(min_length=1, max_length=128)
    password: str = Field(min_length=6, max_length=128)


class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserPublic
