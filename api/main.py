"""
FastAPI application initialization
"""

from fastapi import FastAPI
from api.routes import health
from core.config import settings
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware

setup_logging()

logger = logging.getLogger(__name__)

app = FastAPI(
    title="MySocial Indexer",
    description="Operational endpoints for the MySocial checkpoint indexer",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting MySocial indexer API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "MySocial Indexer",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }
