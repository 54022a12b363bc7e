"""
Core utilities and configuration for the MySocial indexer.

This package provides foundational components used throughout the ingestion
pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Async engine, session factory and dialect-aware inserts
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.database import async_session_maker
    from core.exceptions import CheckpointFetchError, ProjectionError
    from core.logging import setup_logging

Example:
    # Initialize logging
    setup_logging()

    # Get database session
    async with async_session_maker() as session:
        # Perform database operations
        pass
"""

__all__ = [
    "settings",
    "async_session_maker",
    "setup_logging",
    # Exceptions
    "IndexerException",
    "RetryableError",
    "NonRetryableError",
    "SourceError",
    "CheckpointNotAvailableError",
    "NetworkError",
    "CheckpointFetchError",
    "ProjectionError",
    "EventValidationError",
    "UsernameConflictError",
    "CursorError",
    "ReconciliationError",
]
