"""
SQLAlchemy ORM models for the social graph projection.

This package defines the relational projection of on-chain social activity.
Every lookup key is a natural key taken from the chain (wallet address or
object id); surrogate integer ids appear only on append-only audit tables.

Models:
    base: Declarative Base, portable column types and shared enums
    checkpoint: IndexerProgress, the per-worker progress cursor
    profile: Profile, Username, UsernameHistory, Follow, ProfileBlock
    platform: Platform, PlatformMembership, PlatformBlock
    content: Content, ContentInteraction
    ip: IntellectualProperty, IPLicense
    fees: FeeDistribution, FeeRecipientPayment, FeeRecipient
    audit: ProfileEventLog, PlatformEventLog, IngestionError

Database Schema:
    Relationship tables (follows, blocks, memberships) carry no boolean
    state: row existence is the fact. Counters on profiles and platforms
    are a cache of COUNT(*) over those tables.

Usage:
    from models import Profile, Follow, IndexerProgress
    from models.base import Base

Importing this package registers every table on Base.metadata.
"""

from models.base import Base
from models.checkpoint import IndexerProgress
from models.profile import Profile, Username, UsernameHistory, Follow, ProfileBlock
from models.platform import Platform, PlatformMembership, PlatformBlock
from models.content import Content, ContentInteraction
from models.ip import IntellectualProperty, IPLicense
from models.fees import FeeDistribution, FeeRecipientPayment, FeeRecipient
from models.audit import ProfileEventLog, PlatformEventLog, IngestionError

__all__ = [
    "Base",
    "IndexerProgress",
    "Profile",
    "Username",
    "UsernameHistory",
    "Follow",
    "ProfileBlock",
    "Platform",
    "PlatformMembership",
    "PlatformBlock",
    "Content",
    "ContentInteraction",
    "IntellectualProperty",
    "IPLicense",
    "FeeDistribution",
    "FeeRecipientPayment",
    "FeeRecipient",
    "ProfileEventLog",
    "PlatformEventLog",
    "IngestionError",
]
