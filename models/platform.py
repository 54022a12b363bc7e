from sqlalchemy import Column, String, Integer, SmallInteger, DateTime, Text, Boolean, Index
from models.base import Base, JSONType, PlatformStatus, utcnow


class Platform(Base):
    """
    Platform registered on chain.

    Metadata fields are overwritten by update events only when present in the
    event. total_users_count mirrors the number of membership rows.
    """
    __tablename__ = "platforms"

    platform_id = Column(String(100), primary_key=True)
    name = Column(String(255), nullable=False)
    tagline = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    logo = Column(Text, nullable=True)
    developer_address = Column(String(100), nullable=False)
    terms_of_service = Column(Text, nullable=True)
    privacy_policy = Column(Text, nullable=True)
    platforms = Column(JSONType, nullable=True)  # external platform names
    links = Column(JSONType, nullable=True)
    status = Column(SmallInteger, nullable=False, default=PlatformStatus.DEVELOPMENT.value)
    release_date = Column(String(100), nullable=True)
    shutdown_date = Column(String(100), nullable=True)

    # Approval
    is_approved = Column(Boolean, nullable=False, default=False)
    approved_by = Column(String(100), nullable=True)
    approval_changed_at = Column(DateTime, nullable=True)

    total_users_count = Column(Integer, nullable=False, default=0)
    content_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_platforms_developer", "developer_address"),
    )


class PlatformMembership(Base):
    """Profile membership in a platform. Leaving deletes the row."""
    __tablename__ = "platform_memberships"

    platform_id = Column(String(100), primary_key=True)
    profile_id = Column(String(100), primary_key=True)
    joined_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_memberships_profile", "profile_id"),
    )


class PlatformBlock(Base):
    """Profile blocked by a platform. Unblocking deletes the row."""
    __tablename__ = "platform_blocks"

    platform_id = Column(String(100), primary_key=True)
    profile_id = Column(String(100), primary_key=True)
    blocked_by = Column(String(100), nullable=True)
    blocked_at = Column(DateTime, nullable=False, default=utcnow)
