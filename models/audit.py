from sqlalchemy import Column, String, DateTime, Text, BigInteger, Index
from models.base import Base, BigIntId, JSONType, utcnow


class ProfileEventLog(Base):
    """
    Append-only audit of profile-scoped events.

    event_id is unique so replaying a checkpoint never duplicates entries.
    """
    __tablename__ = "profile_events"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    event_type = Column(String(100), nullable=False)
    subject_id = Column(String(100), nullable=True)
    event_data = Column(JSONType, nullable=False)
    event_id = Column(String(200), unique=True, nullable=True)
    checkpoint_sequence = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_profile_events_subject", "subject_id"),
    )


class PlatformEventLog(Base):
    """Append-only audit of platform-scoped events."""
    __tablename__ = "platform_events"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    event_type = Column(String(100), nullable=False)
    subject_id = Column(String(100), nullable=True)
    event_data = Column(JSONType, nullable=False)
    event_id = Column(String(200), unique=True, nullable=True)
    checkpoint_sequence = Column(BigInteger, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_platform_events_subject", "subject_id"),
    )


class IngestionError(Base):
    """
    Events that were skipped instead of applied.

    error_type is one of IngestionErrorType: parse (payload could not be
    decoded), validation (domain rule rejected it) or conflict (username
    already owned by another profile).
    """
    __tablename__ = "ingestion_errors"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    event_id = Column(String(200), unique=True, nullable=True)
    checkpoint_sequence = Column(BigInteger, nullable=True, index=True)
    event_type = Column(Text, nullable=False)
    error_type = Column(String(20), nullable=False)
    reason = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
