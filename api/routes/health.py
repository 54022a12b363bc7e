"""
Health check endpoint with database and ingestion cursor status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, CursorInfo
from models.checkpoint import IndexerProgress
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Last processed checkpoint for every ingestion worker
    """
    db_connected = False
    cursors = []

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True

        result = await db.execute(select(IndexerProgress).order_by(IndexerProgress.worker_id))
        cursors = [CursorInfo.model_validate(row) for row in result.scalars().all()]
    except SQLAlchemyError as e:
        logger.error(f"Health check database query failed: {str(e)}")

    return HealthCheckResponse(
        status="healthy" if db_connected else "unhealthy",
        database_connected=db_connected,
        cursors=cursors,
    )
