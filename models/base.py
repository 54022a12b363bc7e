from datetime import datetime, timezone
from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================================
# ENUMS
# ============================================================================

class PlatformStatus(int, enum.Enum):
    """Platform lifecycle status as emitted on chain"""
    DEVELOPMENT = 0
    ALPHA = 1
    BETA = 2
    LIVE = 3
    MAINTENANCE = 4
    SUNSET = 5
    SHUTDOWN = 6


class IngestionErrorType(str, enum.Enum):
    """Why an event was skipped instead of applied"""
    PARSE = "parse"
    VALIDATION = "validation"
    CONFLICT = "conflict"


class InteractionType(str, enum.Enum):
    """Content interaction kinds with a counter on the content row"""
    LIKE = "like"
    COMMENT = "comment"
    SHARE = "share"
    VIEW = "view"
