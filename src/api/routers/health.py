"""Health check endpoints."""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_hits_session, get_roles_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    hits_database: str
    roles_database: str


async def _check(db: AsyncSession, name: str) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database health check failed context=%s", name)
        return "unhealthy"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(
    hits_db: AsyncSession = Depends(get_hits_session),
    roles_db: AsyncSession = Depends(get_roles_session),
) -> HealthResponse:
    """Check application and database health."""
    hits_status = await _check(hits_db, "HitsContext")
    roles_status = await _check(roles_db, "AppUserRolesContext")
    healthy = hits_status == roles_status == "healthy"

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        hits_database=hits_status,
        roles_database=roles_status,
    )
