"""
API Router
"""

from fastapi import APIRouter, Depends

from app.api.dm.messages import router as dm_messages_router
from app.api.health import router as health_router
from app.api.user.friend import router as friend_router
from app.api.user.login import router as auth_router
from app.api.user.profile import router as profile_router
from app.core.token import security_scheme

api_router = APIRouter()

# 1. Routes that DON'T need authentication (Public)
api_router.include_router(auth_router)
api_router.include_router(health_router)

# 2. Routes that DO need authentication (Protected)
api_router.include_router(profile_router, dependencies=[Depends(security_scheme)])
api_router.include_router(friend_router, dependencies=[Depends(security_scheme)])
api_router.include_router(dm_messages_router, dependencies=[Depends(security_scheme)])
