"""
Durable progress cursor for ingestion workers.

The cursor records the highest checkpoint whose projection transaction has
committed. It is advanced in its own transaction, after the projection
commit, and never moves backwards.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.database import dialect_insert
from core.exceptions import CursorError
from models.base import utcnow
from models.checkpoint import IndexerProgress
import logging

logger = logging.getLogger(__name__)


class ProgressCursorStore:
    """Read and advance per-worker progress cursors."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def read(self, worker_id: str) -> Optional[int]:
        """Last processed checkpoint for ``worker_id``, or None if it never ran."""
        try:
            async with self.session_factory() as session:
                return await session.scalar(
                    select(IndexerProgress.last_checkpoint_processed).where(
                        IndexerProgress.worker_id == worker_id
                    )
                )
        except SQLAlchemyError as e:
            raise CursorError(
                "Failed to read progress cursor",
                context={"worker_id": worker_id, "operation": "read"},
                original_exception=e,
            )

    async def advance(self, worker_id: str, sequence_number: int) -> None:
        """
        Durably record ``sequence_number`` as processed.

        The update only fires when the stored value is lower, so a stale or
        duplicate advance is a no-op.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    stmt = dialect_insert(session, IndexerProgress).values(
                        worker_id=worker_id,
                        last_checkpoint_processed=sequence_number,
                        last_processed_at=utcnow(),
                    )
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["worker_id"],
                        set_={
                            "last_checkpoint_processed": stmt.excluded.last_checkpoint_processed,
                            "last_processed_at": stmt.excluded.last_processed_at,
                        },
                        where=(
                            IndexerProgress.last_checkpoint_processed
                            < stmt.excluded.last_checkpoint_processed
                        ),
                    )
                    await session.execute(stmt)
        except SQLAlchemyError as e:
            raise CursorError(
                f"Failed to advance progress cursor to {sequence_number}",
                context={"worker_id": worker_id, "checkpoint": sequence_number, "operation": "advance"},
                original_exception=e,
            )

        logger.debug(f"Cursor for {worker_id} advanced to {sequence_number}")

    async def list_all(self) -> List[IndexerProgress]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(IndexerProgress).order_by(IndexerProgress.worker_id)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise CursorError(
                "Failed to list progress cursors",
                context={"operation": "list"},
                original_exception=e,
            )
