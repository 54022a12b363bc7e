"""
Typed domain events decoded from on-chain event payloads.

Each recognized on-chain struct name maps to an EventKind and a payload
model. Payload models ignore unknown fields and accept the alternate field
names used across contract versions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)


def _flatten_object_id(value: Any) -> Any:
    """Object ids sometimes arrive wrapped as {"id": ...} or {"bytes": ...}."""
    while isinstance(value, dict):
        if "id" in value:
            value = value["id"]
        elif "bytes" in value:
            value = value["bytes"]
        else:
            break
    return value


# Column widths of the projection tables
ID_MAX_LENGTH = 100
NAME_MAX_LENGTH = 255
TITLE_MAX_LENGTH = 500
TYPE_MAX_LENGTH = 50

# 9999-12-31T23:59:59Z in milliseconds, the last instant a datetime can hold
MAX_EPOCH_MS = 253_402_300_799_000
# Signed 64-bit range of BIGINT amount columns
MAX_AMOUNT = 2 ** 63 - 1

ObjectId = Annotated[
    str,
    BeforeValidator(_flatten_object_id),
    StringConstraints(min_length=1, max_length=ID_MAX_LENGTH),
]
Address = Annotated[str, StringConstraints(min_length=1, max_length=ID_MAX_LENGTH)]
EpochValue = Annotated[int, Field(ge=0, le=MAX_EPOCH_MS)]
Amount = Annotated[int, Field(ge=0, le=MAX_AMOUNT)]


def epoch_to_datetime(value: Optional[int]) -> Optional[datetime]:
    """
    Convert an on-chain epoch value to a naive UTC datetime.

    Values above 1e11 are treated as milliseconds, smaller ones as seconds.
    Payload models bound epoch fields with EpochValue so this never overflows.
    """
    if value is None:
        return None
    seconds = value / 1000 if value > 100_000_000_000 else value
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


# ============================================================================
# Event kinds and registry
# ============================================================================

class EventKind(str, Enum):
    PROFILE_CREATED = "profile_created"
    PROFILE_UPDATED = "profile_updated"
    USERNAME_REGISTERED = "username_registered"
    USERNAME_CHANGED = "username_changed"
    FOLLOWED = "followed"
    UNFOLLOWED = "unfollowed"
    PROFILE_BLOCKED = "profile_blocked"
    PROFILE_UNBLOCKED = "profile_unblocked"
    PLATFORM_CREATED = "platform_created"
    PLATFORM_UPDATED = "platform_updated"
    PLATFORM_APPROVAL_CHANGED = "platform_approval_changed"
    PLATFORM_BLOCKED_PROFILE = "platform_blocked_profile"
    PLATFORM_UNBLOCKED_PROFILE = "platform_unblocked_profile"
    PLATFORM_JOINED = "platform_joined"
    PLATFORM_LEFT = "platform_left"
    CONTENT_CREATED = "content_created"
    CONTENT_INTERACTION = "content_interaction"
    IP_REGISTERED = "ip_registered"
    LICENSE_GRANTED = "license_granted"
    FEES_DISTRIBUTED = "fees_distributed"


# On-chain struct name -> kind. Several contract versions emit different names.
EVENT_REGISTRY: Dict[str, EventKind] = {
    "ProfileCreatedEvent": EventKind.PROFILE_CREATED,
    "ProfileUpdatedEvent": EventKind.PROFILE_UPDATED,
    "UsernameRegisteredEvent": EventKind.USERNAME_REGISTERED,
    "UsernameUpdatedEvent": EventKind.USERNAME_CHANGED,
    "UsernameChangedEvent": EventKind.USERNAME_CHANGED,
    "FollowEvent": EventKind.FOLLOWED,
    "FollowedEvent": EventKind.FOLLOWED,
    "UnfollowEvent": EventKind.UNFOLLOWED,
    "UnfollowedEvent": EventKind.UNFOLLOWED,
    "BlockAddedEvent": EventKind.PROFILE_BLOCKED,
    "UserBlockEvent": EventKind.PROFILE_BLOCKED,
    "ProfileBlockedEvent": EventKind.PROFILE_BLOCKED,
    "BlockRemovedEvent": EventKind.PROFILE_UNBLOCKED,
    "UserUnblockEvent": EventKind.PROFILE_UNBLOCKED,
    "ProfileUnblockedEvent": EventKind.PROFILE_UNBLOCKED,
    "BlockProfileEvent": EventKind.PROFILE_BLOCKED,
    "UnblockProfileEvent": EventKind.PROFILE_UNBLOCKED,
    "EntityBlockedEvent": EventKind.PROFILE_BLOCKED,
    "EntityUnblockedEvent": EventKind.PROFILE_UNBLOCKED,
    "PlatformCreatedEvent": EventKind.PLATFORM_CREATED,
    "PlatformUpdatedEvent": EventKind.PLATFORM_UPDATED,
    "PlatformApprovalChangedEvent": EventKind.PLATFORM_APPROVAL_CHANGED,
    "PlatformBlockedProfileEvent": EventKind.PLATFORM_BLOCKED_PROFILE,
    "PlatformUnblockedProfileEvent": EventKind.PLATFORM_UNBLOCKED_PROFILE,
    "UserJoinedPlatformEvent": EventKind.PLATFORM_JOINED,
    "PlatformJoinedEvent": EventKind.PLATFORM_JOINED,
    "UserLeftPlatformEvent": EventKind.PLATFORM_LEFT,
    "PlatformLeftEvent": EventKind.PLATFORM_LEFT,
    "ContentCreatedEvent": EventKind.CONTENT_CREATED,
    "PostCreatedEvent": EventKind.CONTENT_CREATED,
    "ContentInteractionEvent": EventKind.CONTENT_INTERACTION,
    "IPRegisteredEvent": EventKind.IP_REGISTERED,
    "LicenseGrantedEvent": EventKind.LICENSE_GRANTED,
    "FeesDistributedEvent": EventKind.FEES_DISTRIBUTED,
}

# Kinds audited in platform_events; everything else goes to profile_events
PLATFORM_SCOPED_KINDS = frozenset({
    EventKind.PLATFORM_CREATED,
    EventKind.PLATFORM_UPDATED,
    EventKind.PLATFORM_APPROVAL_CHANGED,
    EventKind.PLATFORM_BLOCKED_PROFILE,
    EventKind.PLATFORM_UNBLOCKED_PROFILE,
    EventKind.PLATFORM_JOINED,
    EventKind.PLATFORM_LEFT,
})


# ============================================================================
# Payload models
# ============================================================================

class EventPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    def subject_id(self) -> Optional[str]:
        """Natural key the event is about, used by the event log."""
        return None


class ProfileCreatedPayload(EventPayload):
    profile_id: ObjectId
    owner_address: Address = Field(validation_alias=AliasChoices("owner_address", "owner"))
    username: Optional[str] = Field(default=None, max_length=ID_MAX_LENGTH)
    display_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    profile_photo: Optional[str] = None
    cover_photo: Optional[str] = None
    bio: Optional[str] = None
    created_at: Optional[EpochValue] = None

    def subject_id(self):
        return self.owner_address


class ProfileUpdatedPayload(EventPayload):
    profile_id: ObjectId
    owner_address: Address = Field(validation_alias=AliasChoices("owner_address", "owner"))
    display_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    profile_photo: Optional[str] = None
    cover_photo: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    updated_at: Optional[EpochValue] = None

    def subject_id(self):
        return self.owner_address


class UsernameRegisteredPayload(EventPayload):
    profile_id: ObjectId
    username: str = Field(min_length=1, max_length=ID_MAX_LENGTH)
    owner_address: Optional[Address] = Field(
        default=None, validation_alias=AliasChoices("owner_address", "owner")
    )
    expires_at: Optional[EpochValue] = None
    registered_at: Optional[EpochValue] = None

    def subject_id(self):
        return self.profile_id


class UsernameChangedPayload(EventPayload):
    profile_id: ObjectId
    old_username: Optional[str] = None
    new_username: str = Field(min_length=1, max_length=ID_MAX_LENGTH)
    owner_address: Optional[Address] = Field(
        default=None, validation_alias=AliasChoices("owner_address", "owner")
    )

    def subject_id(self):
        return self.profile_id


class FollowPayload(EventPayload):
    follower: Address = Field(validation_alias=AliasChoices("follower", "follower_address"))
    following: Address = Field(
        validation_alias=AliasChoices("following", "followed", "unfollowed", "following_address")
    )
    timestamp: Optional[EpochValue] = None

    def subject_id(self):
        return self.follower


class ProfileBlockPayload(EventPayload):
    blocker: Address = Field(
        validation_alias=AliasChoices("blocker", "blocker_profile_id", "blocker_id")
    )
    blocked: Address = Field(
        validation_alias=AliasChoices(
            "blocked", "blocked_profile_id", "blocked_id", "unblocked", "unblocked_id"
        )
    )
    timestamp: Optional[EpochValue] = None

    def subject_id(self):
        return self.blocker


class PlatformCreatedPayload(EventPayload):
    platform_id: ObjectId
    name: str = Field(max_length=NAME_MAX_LENGTH)
    tagline: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    logo: Optional[str] = None
    developer: Address = Field(validation_alias=AliasChoices("developer", "developer_address"))
    terms_of_service: Optional[str] = None
    privacy_policy: Optional[str] = None
    platforms: Optional[List[str]] = None
    links: Optional[List[str]] = None
    status: Optional[int] = Field(default=None, ge=0, le=32_767)
    release_date: Optional[str] = Field(default=None, max_length=ID_MAX_LENGTH)
    created_at: Optional[EpochValue] = Field(
        default=None, validation_alias=AliasChoices("created_at", "timestamp")
    )

    def subject_id(self):
        return self.platform_id


class PlatformUpdatedPayload(EventPayload):
    platform_id: ObjectId
    name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    tagline: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    logo: Optional[str] = None
    terms_of_service: Optional[str] = None
    privacy_policy: Optional[str] = None
    platforms: Optional[List[str]] = None
    links: Optional[List[str]] = None
    status: Optional[int] = Field(default=None, ge=0, le=32_767)
    release_date: Optional[str] = Field(default=None, max_length=ID_MAX_LENGTH)
    shutdown_date: Optional[str] = Field(default=None, max_length=ID_MAX_LENGTH)
    updated_at: Optional[EpochValue] = Field(
        default=None, validation_alias=AliasChoices("updated_at", "timestamp")
    )

    def subject_id(self):
        return self.platform_id


class PlatformApprovalPayload(EventPayload):
    platform_id: ObjectId
    approved: bool = Field(validation_alias=AliasChoices("approved", "is_approved"))
    approved_by: Optional[Address] = Field(
        default=None, validation_alias=AliasChoices("approved_by", "changed_by")
    )
    timestamp: Optional[EpochValue] = None

    def subject_id(self):
        return self.platform_id


class PlatformProfilePayload(EventPayload):
    """Shared shape of platform join, leave, block and unblock events."""

    platform_id: ObjectId
    profile_id: ObjectId = Field(validation_alias=AliasChoices("profile_id", "user", "wallet_address"))
    by: Optional[Address] = Field(default=None, validation_alias=AliasChoices("by", "blocked_by"))
    timestamp: Optional[EpochValue] = None

    def subject_id(self):
        return self.platform_id


class ContentCreatedPayload(EventPayload):
    content_id: ObjectId
    creator: Address = Field(validation_alias=AliasChoices("creator", "creator_id", "owner"))
    platform_id: Optional[ObjectId] = None
    content_type: str = Field(
        default="post",
        max_length=TYPE_MAX_LENGTH,
        validation_alias=AliasChoices("content_type", "post_type"),
    )
    parent_id: Optional[ObjectId] = None
    created_at: Optional[EpochValue] = None

    def subject_id(self):
        return self.creator


class ContentInteractionPayload(EventPayload):
    profile_id: ObjectId = Field(validation_alias=AliasChoices("profile_id", "user"))
    content_id: ObjectId
    interaction_type: str = Field(max_length=TYPE_MAX_LENGTH)
    created_at: Optional[EpochValue] = None

    @field_validator("interaction_type")
    @classmethod
    def normalize_interaction_type(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("interaction_type cannot be empty")
        return v

    def subject_id(self):
        return self.profile_id


class IPRegisteredPayload(EventPayload):
    ip_id: ObjectId
    creator: Address
    title: str = Field(max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = None
    ip_type: str = Field(max_length=TYPE_MAX_LENGTH)
    created_at: Optional[EpochValue] = None

    def subject_id(self):
        return self.creator


class LicenseGrantedPayload(EventPayload):
    license_id: ObjectId
    ip_id: ObjectId
    licensee: Address
    license_type: str = Field(max_length=TYPE_MAX_LENGTH)
    granted_at: Optional[EpochValue] = None
    expires_at: Optional[EpochValue] = None
    payment_amount: Amount = 0

    def subject_id(self):
        return self.licensee


class FeeSplitPayload(EventPayload):
    recipient: Address
    recipient_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    share_bps: Optional[int] = Field(default=None, ge=0, le=10_000)
    amount: Optional[Amount] = None


class FeesDistributedPayload(EventPayload):
    fee_model_id: ObjectId
    model_name: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    transaction_amount: Amount = 0
    total_fee_amount: Amount = 0
    token_type: Optional[str] = Field(default=None, max_length=NAME_MAX_LENGTH)
    recipients: List[FeeSplitPayload] = Field(
        default_factory=list, validation_alias=AliasChoices("recipients", "splits")
    )
    timestamp: Optional[EpochValue] = None

    def subject_id(self):
        return self.fee_model_id


PAYLOAD_MODELS: Dict[EventKind, Type[EventPayload]] = {
    EventKind.PROFILE_CREATED: ProfileCreatedPayload,
    EventKind.PROFILE_UPDATED: ProfileUpdatedPayload,
    EventKind.USERNAME_REGISTERED: UsernameRegisteredPayload,
    EventKind.USERNAME_CHANGED: UsernameChangedPayload,
    EventKind.FOLLOWED: FollowPayload,
    EventKind.UNFOLLOWED: FollowPayload,
    EventKind.PROFILE_BLOCKED: ProfileBlockPayload,
    EventKind.PROFILE_UNBLOCKED: ProfileBlockPayload,
    EventKind.PLATFORM_CREATED: PlatformCreatedPayload,
    EventKind.PLATFORM_UPDATED: PlatformUpdatedPayload,
    EventKind.PLATFORM_APPROVAL_CHANGED: PlatformApprovalPayload,
    EventKind.PLATFORM_BLOCKED_PROFILE: PlatformProfilePayload,
    EventKind.PLATFORM_UNBLOCKED_PROFILE: PlatformProfilePayload,
    EventKind.PLATFORM_JOINED: PlatformProfilePayload,
    EventKind.PLATFORM_LEFT: PlatformProfilePayload,
    EventKind.CONTENT_CREATED: ContentCreatedPayload,
    EventKind.CONTENT_INTERACTION: ContentInteractionPayload,
    EventKind.IP_REGISTERED: IPRegisteredPayload,
    EventKind.LICENSE_GRANTED: LicenseGrantedPayload,
    EventKind.FEES_DISTRIBUTED: FeesDistributedPayload,
}


# ============================================================================
# Extractor output
# ============================================================================

class DomainEvent(BaseModel):
    """A decoded event ready to be applied to the projection."""

    kind: EventKind
    event_type: str
    event_id: str
    tx_digest: str
    checkpoint_sequence: int
    timestamp: Optional[datetime] = None
    payload: EventPayload
    raw: Dict[str, Any] = Field(default_factory=dict)


class RejectedEvent(BaseModel):
    """A recognized event that could not be decoded or applied."""

    event_type: str
    event_id: Optional[str] = None
    checkpoint_sequence: Optional[int] = None
    error_type: str = "parse"
    reason: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class ExtractionResult(BaseModel):
    events: List[DomainEvent] = Field(default_factory=list)
    rejected: List[RejectedEvent] = Field(default_factory=list)
