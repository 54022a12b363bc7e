from sqlalchemy import Column, String, DateTime, BigInteger
from models.base import Base, utcnow


class IndexerProgress(Base):
    """
    Durable progress cursor, one row per ingestion worker.

    Design:
    - last_checkpoint_processed is the highest checkpoint whose projection
      transaction has committed
    - Only ever moves forward; written after the projection commit
    - On restart the worker resumes at last_checkpoint_processed + 1
    """
    __tablename__ = "indexer_progress"

    worker_id = Column(String(100), primary_key=True)
    last_checkpoint_processed = Column(BigInteger, nullable=False)
    last_processed_at = Column(DateTime, nullable=False, default=utcnow)
