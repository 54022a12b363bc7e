from sqlalchemy import Column, String, Integer, DateTime, Index
from models.base import Base, utcnow


class Content(Base):
    """Post, comment or other content item published through a platform."""
    __tablename__ = "content"

    content_id = Column(String(100), primary_key=True)
    creator_address = Column(String(100), nullable=False)
    platform_id = Column(String(100), nullable=True)
    content_type = Column(String(50), nullable=False)
    parent_id = Column(String(100), nullable=True)

    like_count = Column(Integer, nullable=False, default=0)
    comment_count = Column(Integer, nullable=False, default=0)
    share_count = Column(Integer, nullable=False, default=0)
    view_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_content_creator", "creator_address"),
        Index("idx_content_platform", "platform_id"),
    )


class ContentInteraction(Base):
    """One interaction of a kind by a profile on a content item."""
    __tablename__ = "content_interactions"

    profile_id = Column(String(100), primary_key=True)
    content_id = Column(String(100), primary_key=True)
    interaction_type = Column(String(50), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
