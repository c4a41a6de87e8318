"""
Health check endpoints
"""

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.deps import ConnectionManagerDep, SessionDep
from app.core.logging import get_logger

router = APIRouter(tags=["health"])
logger = get_logger(__name__)


@router.get("/health")
async def health_check(db: SessionDep, registry: ConnectionManagerDep):
    """
    Check health of the database and report live connection counts
    """
    status = {"api": "ok", "db": "unknown"}

    try:
        await db.execute(text("SELECT 1"))
        status["db"] = "ok"
    except SQLAlchemyError as e:
        logger.warning("health.db_failed", error=str(e))
        status["db"] = "error"

    status["connections"] = registry.get_stats()
    return status
