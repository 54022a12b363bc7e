from sqlalchemy import Column, String, Integer, DateTime, Text, BigInteger, Index
from models.base import Base, BigIntId, utcnow


class Profile(Base):
    """
    Social profile keyed by the owning wallet address.

    Profiles are created on first sight: either from a profile creation event
    or on demand, with zero counters, when a follow or content event references
    an address that has no profile yet. They are never deleted.

    The counters are an incrementally maintained cache; the reconciliation
    sweeper recomputes them from the relationship tables.
    """
    __tablename__ = "profiles"

    owner_address = Column(String(100), primary_key=True)
    profile_id = Column(String(100), unique=True, nullable=True)

    display_name = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    profile_photo = Column(Text, nullable=True)
    cover_photo = Column(Text, nullable=True)
    website = Column(Text, nullable=True)

    followers_count = Column(Integer, nullable=False, default=0)
    following_count = Column(Integer, nullable=False, default=0)
    content_count = Column(Integer, nullable=False, default=0)
    platforms_joined = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow)
    last_activity_at = Column(DateTime, nullable=True)


class Username(Base):
    """Globally unique username; at most one per profile."""
    __tablename__ = "usernames"

    username = Column(String(100), primary_key=True)
    profile_id = Column(String(100), unique=True, nullable=False)
    owner_address = Column(String(100), nullable=True)
    registered_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow)


class UsernameHistory(Base):
    """Append-only log of username changes, written with the swap itself."""
    __tablename__ = "username_history"

    id = Column(BigIntId, primary_key=True, autoincrement=True)
    profile_id = Column(String(100), nullable=False)
    old_username = Column(String(100), nullable=False)
    new_username = Column(String(100), nullable=False)
    owner_address = Column(String(100), nullable=True)
    event_id = Column(String(200), unique=True, nullable=True)
    checkpoint_sequence = Column(BigInteger, nullable=True)
    changed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_username_history_profile", "profile_id"),
    )


class Follow(Base):
    """Follow relationship. Row existence is the 'is following' fact."""
    __tablename__ = "follows"

    follower_address = Column(String(100), primary_key=True)
    following_address = Column(String(100), primary_key=True)
    followed_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_follows_following", "following_address"),
    )


class ProfileBlock(Base):
    """Profile-to-profile block. Unblocking deletes the row."""
    __tablename__ = "profile_blocks"

    blocker_key = Column(String(100), primary_key=True)
    blocked_key = Column(String(100), primary_key=True)
    blocked_at = Column(DateTime, nullable=False, default=utcnow)
