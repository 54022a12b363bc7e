"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime

from models.base import utcnow

# ============================================================================
# Health Check Schemas
# ============================================================================

class CursorInfo(BaseModel):
    """Ingestion progress for one worker"""
    model_config = ConfigDict(from_attributes=True)

    worker_id: str
    last_checkpoint_processed: int
    last_processed_at: Optional[datetime] = None


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "cursors": [
                    {
                        "worker_id": "social-indexer",
                        "last_checkpoint_processed": 101,
                        "last_processed_at": "2024-01-15T10:29:58Z",
                    }
                ],
            }
        }
    )

    status: str = Field(..., description="Overall system status: healthy or unhealthy")
    timestamp: datetime = Field(default_factory=utcnow)
    database_connected: bool
    cursors: List[CursorInfo] = Field(default_factory=list)
