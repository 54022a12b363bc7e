"""
Apply one checkpoint's domain events to the relational projection (idempotency)
"""

from collections import OrderedDict
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy import case, delete, false, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.database import dialect_insert
from core.exceptions import (
    EventValidationError,
    ProjectionError,
    UsernameConflictError,
)
from models import (
    Content,
    ContentInteraction,
    FeeDistribution,
    FeeRecipient,
    FeeRecipientPayment,
    Follow,
    IngestionError,
    IntellectualProperty,
    IPLicense,
    Platform,
    PlatformBlock,
    PlatformEventLog,
    PlatformMembership,
    Profile,
    ProfileBlock,
    ProfileEventLog,
    Username,
    UsernameHistory,
)
from models.base import IngestionErrorType, InteractionType, utcnow
from schemas.events import (
    PLATFORM_SCOPED_KINDS,
    DomainEvent,
    EventKind,
    RejectedEvent,
    epoch_to_datetime,
)
import logging

logger = logging.getLogger(__name__)

INTERACTION_COUNTERS = {
    InteractionType.LIKE.value: Content.like_count,
    InteractionType.COMMENT.value: Content.comment_count,
    InteractionType.SHARE.value: Content.share_count,
    InteractionType.VIEW.value: Content.view_count,
}


def decrement_floored(column):
    """column - 1, never below zero."""
    return case((column > 0, column - 1), else_=0)


def latest(existing, incoming):
    """The later of two timestamps, ignoring a NULL existing value."""
    return case(
        (existing.is_(None), incoming),
        (incoming > existing, incoming),
        else_=existing,
    )


def event_time(event: DomainEvent, epoch_value: Optional[int] = None) -> datetime:
    return epoch_to_datetime(epoch_value) or event.timestamp or utcnow()


class ProjectionWriter:
    """
    Apply a checkpoint's events inside a single database transaction.

    Ensures:
    - All-or-nothing per checkpoint: any database failure rolls back every
      event of the checkpoint and raises ProjectionError
    - Replaying a checkpoint leaves the projection unchanged: relationship
      rows are insert-or-ignore / delete-if-exists and counters only move
      when a row was actually inserted or deleted
    - Per-event rejections (validation, username conflicts, parse errors)
      are recorded in ingestion_errors and never abort the checkpoint
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._handlers: Dict[EventKind, Callable[[AsyncSession, DomainEvent], Awaitable[bool]]] = {
            EventKind.PROFILE_CREATED: self._apply_profile_created,
            EventKind.PROFILE_UPDATED: self._apply_profile_updated,
            EventKind.USERNAME_REGISTERED: self._apply_username_registered,
            EventKind.USERNAME_CHANGED: self._apply_username_changed,
            EventKind.FOLLOWED: self._apply_followed,
            EventKind.UNFOLLOWED: self._apply_unfollowed,
            EventKind.PROFILE_BLOCKED: self._apply_profile_blocked,
            EventKind.PROFILE_UNBLOCKED: self._apply_profile_unblocked,
            EventKind.PLATFORM_CREATED: self._apply_platform_created,
            EventKind.PLATFORM_UPDATED: self._apply_platform_updated,
            EventKind.PLATFORM_APPROVAL_CHANGED: self._apply_platform_approval_changed,
            EventKind.PLATFORM_BLOCKED_PROFILE: self._apply_platform_blocked_profile,
            EventKind.PLATFORM_UNBLOCKED_PROFILE: self._apply_platform_unblocked_profile,
            EventKind.PLATFORM_JOINED: self._apply_platform_joined,
            EventKind.PLATFORM_LEFT: self._apply_platform_left,
            EventKind.CONTENT_CREATED: self._apply_content_created,
            EventKind.CONTENT_INTERACTION: self._apply_content_interaction,
            EventKind.IP_REGISTERED: self._apply_ip_registered,
            EventKind.LICENSE_GRANTED: self._apply_license_granted,
            EventKind.FEES_DISTRIBUTED: self._apply_fees_distributed,
        }

    async def apply(
        self,
        checkpoint_sequence: int,
        events: Sequence[DomainEvent],
        rejected: Sequence[RejectedEvent] = (),
    ) -> Dict[str, Any]:
        """
        Apply ``events`` in order as one transaction.

        Args:
            checkpoint_sequence: Checkpoint the events belong to
            events: Domain events in chain order
            rejected: Events the extractor could not decode

        Returns:
            Dictionary with apply statistics

        Raises:
            ProjectionError: The transaction was rolled back
        """
        applied = 0
        skipped = 0
        error_details: List[Dict[str, Any]] = []
        current: Optional[DomainEvent] = None

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    for rejection in rejected:
                        await self._record_rejection(session, rejection)
                        error_details.append({
                            "event_id": rejection.event_id,
                            "error_type": rejection.error_type,
                            "reason": rejection.reason,
                        })

                    for current in events:
                        handler = self._handlers[current.kind]
                        try:
                            changed = await handler(session, current)
                        except (EventValidationError, UsernameConflictError) as e:
                            error_type = (
                                IngestionErrorType.CONFLICT
                                if isinstance(e, UsernameConflictError)
                                else IngestionErrorType.VALIDATION
                            )
                            logger.warning(
                                f"Skipping event {current.event_id} in checkpoint "
                                f"{checkpoint_sequence}: {e.message}",
                                extra={"error_context": e.to_dict()},
                            )
                            await self._record_rejection(session, RejectedEvent(
                                event_type=current.event_type,
                                event_id=current.event_id,
                                checkpoint_sequence=checkpoint_sequence,
                                error_type=error_type.value,
                                reason=e.message,
                                payload=current.raw,
                            ))
                            error_details.append({
                                "event_id": current.event_id,
                                "error_type": error_type.value,
                                "reason": e.message,
                            })
                            continue

                        await self._log_event(session, current)
                        if changed:
                            applied += 1
                        else:
                            skipped += 1

        except SQLAlchemyError as e:
            context = {"checkpoint": checkpoint_sequence}
            if current is not None:
                context.update({"event_id": current.event_id, "event_kind": current.kind.value})
            raise ProjectionError(
                f"Failed to apply checkpoint {checkpoint_sequence}",
                context=context,
                original_exception=e,
            )

        rejected_count = len(error_details)
        logger.info(
            f"Applied checkpoint {checkpoint_sequence}: {applied} applied, "
            f"{skipped} no-op, {rejected_count} rejected"
        )

        return {
            "status": "success" if rejected_count == 0 else "partial_success",
            "checkpoint": checkpoint_sequence,
            "events_applied": applied,
            "events_skipped": skipped,
            "events_rejected": rejected_count,
            "error_details": error_details,
        }

    # ========================================================================
    # Shared helpers
    # ========================================================================

    async def _insert_ignore(self, session: AsyncSession, model, index_elements, returning, **values) -> bool:
        """INSERT ... ON CONFLICT DO NOTHING; True when a row was inserted."""
        stmt = (
            dialect_insert(session, model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=index_elements)
            .returning(returning)
        )
        result = await session.execute(stmt)
        return result.first() is not None

    async def _delete_existing(self, session: AsyncSession, model, returning, *criteria) -> bool:
        """DELETE ... ; True when a row was deleted."""
        result = await session.execute(delete(model).where(*criteria).returning(returning))
        return result.first() is not None

    async def _ensure_profile(self, session: AsyncSession, owner_address: str, seen_at: datetime):
        """Create a bare profile for an address referenced before its creation event."""
        await self._insert_ignore(
            session,
            Profile,
            ["owner_address"],
            Profile.owner_address,
            owner_address=owner_address,
            created_at=seen_at,
            updated_at=seen_at,
            last_activity_at=seen_at,
        )

    async def _log_event(self, session: AsyncSession, event: DomainEvent):
        model = PlatformEventLog if event.kind in PLATFORM_SCOPED_KINDS else ProfileEventLog
        stmt = (
            dialect_insert(session, model)
            .values(
                event_type=event.kind.value,
                subject_id=event.payload.subject_id(),
                event_data=event.payload.model_dump(mode="json"),
                event_id=event.event_id,
                checkpoint_sequence=event.checkpoint_sequence,
                created_at=event_time(event),
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await session.execute(stmt)

    async def _record_rejection(self, session: AsyncSession, rejection: RejectedEvent):
        stmt = (
            dialect_insert(session, IngestionError)
            .values(
                event_id=rejection.event_id,
                checkpoint_sequence=rejection.checkpoint_sequence,
                event_type=rejection.event_type,
                error_type=rejection.error_type,
                reason=rejection.reason,
                payload=rejection.payload,
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await session.execute(stmt)

    # ========================================================================
    # Profiles and usernames
    # ========================================================================

    async def _upsert_profile(self, session: AsyncSession, owner_address: str, profile_id: str,
                              fields: Dict[str, Any], at: datetime) -> bool:
        """
        Insert or update a profile; only fields carried by the event overwrite.

        Returns True when a row was inserted or a carried field changed. An
        event that matches the stored row writes nothing, and last_activity_at
        never moves backwards.
        """
        present = {k: v for k, v in fields.items() if v is not None}
        stmt = dialect_insert(session, Profile).values(
            owner_address=owner_address,
            profile_id=profile_id,
            created_at=at,
            updated_at=at,
            last_activity_at=at,
            **present,
        )
        set_ = {k: stmt.excluded[k] for k in present}
        set_["profile_id"] = stmt.excluded.profile_id
        set_["updated_at"] = stmt.excluded.updated_at
        set_["last_activity_at"] = latest(Profile.last_activity_at, stmt.excluded.last_activity_at)
        differs = or_(*(getattr(Profile, k).is_distinct_from(stmt.excluded[k]) for k in ["profile_id", *present]))
        stmt = stmt.on_conflict_do_update(
            index_elements=["owner_address"], set_=set_, where=differs
        ).returning(Profile.owner_address)
        result = await session.execute(stmt)
        return result.first() is not None

    async def _apply_profile_created(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        at = event_time(event, p.created_at)
        if p.username:
            # Reject before any write so a conflicting event leaves no trace
            await self._check_username_available(session, event, p.profile_id, p.username)
        changed = await self._upsert_profile(
            session,
            p.owner_address,
            p.profile_id,
            {
                "display_name": p.display_name,
                "bio": p.bio,
                "profile_photo": p.profile_photo,
                "cover_photo": p.cover_photo,
            },
            at,
        )
        if p.username:
            if await self._assign_username(session, event, p.profile_id, p.username, p.owner_address, at):
                changed = True
        return changed

    async def _apply_profile_updated(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._upsert_profile(
            session,
            p.owner_address,
            p.profile_id,
            {
                "display_name": p.display_name,
                "bio": p.bio,
                "profile_photo": p.profile_photo,
                "cover_photo": p.cover_photo,
                "website": p.website,
            },
            event_time(event, p.updated_at),
        )

    async def _check_username_available(self, session: AsyncSession, event: DomainEvent,
                                        profile_id: str, username: str) -> Optional[str]:
        """Return the profile holding ``username``; raise if it is another profile."""
        holder = await session.scalar(
            select(Username.profile_id).where(Username.username == username)
        )
        if holder is not None and holder != profile_id:
            raise UsernameConflictError(
                f"Username '{username}' is already owned by another profile",
                context={
                    "username": username,
                    "profile_id": profile_id,
                    "owner_profile_id": holder,
                    "event_id": event.event_id,
                },
            )
        return holder

    async def _assign_username(self, session: AsyncSession, event: DomainEvent, profile_id: str,
                               new_username: str, owner_address: Optional[str], at: datetime,
                               expires_at: Optional[datetime] = None) -> bool:
        """
        Give ``new_username`` to ``profile_id``.

        Returns False when the profile already holds it. Raises
        UsernameConflictError when another profile does, leaving both
        profiles' usernames untouched.
        """
        holder = await self._check_username_available(session, event, profile_id, new_username)
        if holder == profile_id:
            return False

        current = await session.scalar(
            select(Username.username).where(Username.profile_id == profile_id)
        )
        if current is None:
            stmt = dialect_insert(session, Username).values(
                username=new_username,
                profile_id=profile_id,
                owner_address=owner_address,
                registered_at=at,
                expires_at=expires_at,
                updated_at=at,
            )
            await session.execute(stmt)
            return True

        values: Dict[str, Any] = {"username": new_username, "updated_at": at}
        if expires_at is not None:
            values["expires_at"] = expires_at
        await session.execute(
            update(Username).where(Username.profile_id == profile_id).values(**values)
        )
        stmt = (
            dialect_insert(session, UsernameHistory)
            .values(
                profile_id=profile_id,
                old_username=current,
                new_username=new_username,
                owner_address=owner_address,
                event_id=event.event_id,
                checkpoint_sequence=event.checkpoint_sequence,
                changed_at=at,
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
        )
        await session.execute(stmt)
        return True

    async def _apply_username_registered(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._assign_username(
            session,
            event,
            p.profile_id,
            p.username,
            p.owner_address,
            event_time(event, p.registered_at),
            expires_at=epoch_to_datetime(p.expires_at),
        )

    async def _apply_username_changed(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._assign_username(
            session, event, p.profile_id, p.new_username, p.owner_address, event_time(event)
        )

    # ========================================================================
    # Follows and blocks
    # ========================================================================

    async def _apply_followed(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        if p.follower == p.following:
            raise EventValidationError(
                "Profile cannot follow itself",
                context={"follower": p.follower, "event_id": event.event_id},
            )

        at = event_time(event, p.timestamp)
        await self._ensure_profile(session, p.follower, at)
        await self._ensure_profile(session, p.following, at)

        inserted = await self._insert_ignore(
            session,
            Follow,
            ["follower_address", "following_address"],
            Follow.follower_address,
            follower_address=p.follower,
            following_address=p.following,
            followed_at=at,
        )
        if not inserted:
            return False

        await session.execute(
            update(Profile)
            .where(Profile.owner_address == p.follower)
            .values(following_count=Profile.following_count + 1, last_activity_at=at)
        )
        await session.execute(
            update(Profile)
            .where(Profile.owner_address == p.following)
            .values(followers_count=Profile.followers_count + 1)
        )
        return True

    async def _apply_unfollowed(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        deleted = await self._delete_existing(
            session,
            Follow,
            Follow.follower_address,
            Follow.follower_address == p.follower,
            Follow.following_address == p.following,
        )
        if not deleted:
            return False

        await session.execute(
            update(Profile)
            .where(Profile.owner_address == p.follower)
            .values(following_count=decrement_floored(Profile.following_count))
        )
        await session.execute(
            update(Profile)
            .where(Profile.owner_address == p.following)
            .values(followers_count=decrement_floored(Profile.followers_count))
        )
        return True

    async def _apply_profile_blocked(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        if p.blocker == p.blocked:
            raise EventValidationError(
                "Profile cannot block itself",
                context={"blocker": p.blocker, "event_id": event.event_id},
            )
        return await self._insert_ignore(
            session,
            ProfileBlock,
            ["blocker_key", "blocked_key"],
            ProfileBlock.blocker_key,
            blocker_key=p.blocker,
            blocked_key=p.blocked,
            blocked_at=event_time(event, p.timestamp),
        )

    async def _apply_profile_unblocked(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._delete_existing(
            session,
            ProfileBlock,
            ProfileBlock.blocker_key,
            ProfileBlock.blocker_key == p.blocker,
            ProfileBlock.blocked_key == p.blocked,
        )

    # ========================================================================
    # Platforms
    # ========================================================================

    async def _apply_platform_created(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        at = event_time(event, p.created_at)
        metadata = {
            "name": p.name,
            "tagline": p.tagline,
            "description": p.description,
            "logo": p.logo,
            "terms_of_service": p.terms_of_service,
            "privacy_policy": p.privacy_policy,
            "platforms": p.platforms,
            "links": p.links,
            "status": p.status,
            "release_date": p.release_date,
        }
        present = {k: v for k, v in metadata.items() if v is not None}

        # Memberships or content may already reference the platform
        members = (
            select(func.count())
            .select_from(PlatformMembership)
            .where(PlatformMembership.platform_id == p.platform_id)
            .scalar_subquery()
        )
        contents = (
            select(func.count())
            .select_from(Content)
            .where(Content.platform_id == p.platform_id)
            .scalar_subquery()
        )

        stmt = dialect_insert(session, Platform).values(
            platform_id=p.platform_id,
            developer_address=p.developer,
            total_users_count=members,
            content_count=contents,
            created_at=at,
            updated_at=at,
            **present,
        )
        set_ = {k: stmt.excluded[k] for k in present}
        set_["updated_at"] = stmt.excluded.updated_at
        differs = or_(
            false(),
            *(getattr(Platform, k).is_distinct_from(stmt.excluded[k]) for k in present),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["platform_id"], set_=set_, where=differs
        ).returning(Platform.platform_id)
        result = await session.execute(stmt)
        return result.first() is not None

    async def _require_platform_update(self, session: AsyncSession, event: DomainEvent,
                                       values: Dict[str, Any], stamps: Dict[str, Any]) -> bool:
        """
        Update an existing platform when any of ``values`` differs.

        ``stamps`` are written alongside a real change only. Returns True when
        the row changed; raises EventValidationError for an unknown platform.
        """
        platform_id = event.payload.platform_id
        differs = or_(false(), *(getattr(Platform, k).is_distinct_from(v) for k, v in values.items()))
        result = await session.execute(
            update(Platform)
            .where(Platform.platform_id == platform_id, differs)
            .values(**values, **stamps)
            .returning(Platform.platform_id)
        )
        if result.first() is not None:
            return True

        exists = await session.scalar(
            select(Platform.platform_id).where(Platform.platform_id == platform_id)
        )
        if exists is None:
            raise EventValidationError(
                f"Platform {platform_id} does not exist",
                context={"platform_id": platform_id, "event_id": event.event_id},
            )
        return False

    async def _apply_platform_updated(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        fields = p.model_dump(
            include={
                "name", "tagline", "description", "logo", "terms_of_service",
                "privacy_policy", "platforms", "links", "status",
                "release_date", "shutdown_date",
            },
            exclude_none=True,
        )
        return await self._require_platform_update(
            session, event, fields, {"updated_at": event_time(event, p.updated_at)}
        )

    async def _apply_platform_approval_changed(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        at = event_time(event, p.timestamp)
        return await self._require_platform_update(
            session,
            event,
            {"is_approved": p.approved, "approved_by": p.approved_by},
            {"approval_changed_at": at, "updated_at": at},
        )

    async def _apply_platform_blocked_profile(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._insert_ignore(
            session,
            PlatformBlock,
            ["platform_id", "profile_id"],
            PlatformBlock.platform_id,
            platform_id=p.platform_id,
            profile_id=p.profile_id,
            blocked_by=p.by,
            blocked_at=event_time(event, p.timestamp),
        )

    async def _apply_platform_unblocked_profile(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._delete_existing(
            session,
            PlatformBlock,
            PlatformBlock.platform_id,
            PlatformBlock.platform_id == p.platform_id,
            PlatformBlock.profile_id == p.profile_id,
        )

    async def _apply_platform_joined(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        inserted = await self._insert_ignore(
            session,
            PlatformMembership,
            ["platform_id", "profile_id"],
            PlatformMembership.platform_id,
            platform_id=p.platform_id,
            profile_id=p.profile_id,
            joined_at=event_time(event, p.timestamp),
        )
        if not inserted:
            return False

        await session.execute(
            update(Platform)
            .where(Platform.platform_id == p.platform_id)
            .values(total_users_count=Platform.total_users_count + 1)
        )
        await session.execute(
            update(Profile)
            .where((Profile.owner_address == p.profile_id) | (Profile.profile_id == p.profile_id))
            .values(platforms_joined=Profile.platforms_joined + 1)
        )
        return True

    async def _apply_platform_left(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        deleted = await self._delete_existing(
            session,
            PlatformMembership,
            PlatformMembership.platform_id,
            PlatformMembership.platform_id == p.platform_id,
            PlatformMembership.profile_id == p.profile_id,
        )
        if not deleted:
            return False

        await session.execute(
            update(Platform)
            .where(Platform.platform_id == p.platform_id)
            .values(total_users_count=decrement_floored(Platform.total_users_count))
        )
        await session.execute(
            update(Profile)
            .where((Profile.owner_address == p.profile_id) | (Profile.profile_id == p.profile_id))
            .values(platforms_joined=decrement_floored(Profile.platforms_joined))
        )
        return True

    # ========================================================================
    # Content
    # ========================================================================

    async def _apply_content_created(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        at = event_time(event, p.created_at)
        await self._ensure_profile(session, p.creator, at)

        inserted = await self._insert_ignore(
            session,
            Content,
            ["content_id"],
            Content.content_id,
            content_id=p.content_id,
            creator_address=p.creator,
            platform_id=p.platform_id,
            content_type=p.content_type,
            parent_id=p.parent_id,
            created_at=at,
        )
        if not inserted:
            return False

        await session.execute(
            update(Profile)
            .where(Profile.owner_address == p.creator)
            .values(content_count=Profile.content_count + 1, last_activity_at=at)
        )
        if p.platform_id is not None:
            await session.execute(
                update(Platform)
                .where(Platform.platform_id == p.platform_id)
                .values(content_count=Platform.content_count + 1)
            )
        return True

    async def _apply_content_interaction(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        inserted = await self._insert_ignore(
            session,
            ContentInteraction,
            ["profile_id", "content_id", "interaction_type"],
            ContentInteraction.content_id,
            profile_id=p.profile_id,
            content_id=p.content_id,
            interaction_type=p.interaction_type,
            created_at=event_time(event, p.created_at),
        )
        if not inserted:
            return False

        counter = INTERACTION_COUNTERS.get(p.interaction_type)
        if counter is not None:
            await session.execute(
                update(Content)
                .where(Content.content_id == p.content_id)
                .values({counter: counter + 1})
            )
        return True

    # ========================================================================
    # Intellectual property and fees
    # ========================================================================

    async def _apply_ip_registered(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        return await self._insert_ignore(
            session,
            IntellectualProperty,
            ["ip_id"],
            IntellectualProperty.ip_id,
            ip_id=p.ip_id,
            creator_address=p.creator,
            title=p.title,
            description=p.description,
            ip_type=p.ip_type,
            created_at=event_time(event, p.created_at),
        )

    async def _apply_license_granted(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        inserted = await self._insert_ignore(
            session,
            IPLicense,
            ["license_id"],
            IPLicense.license_id,
            license_id=p.license_id,
            ip_id=p.ip_id,
            licensee_address=p.licensee,
            license_type=p.license_type,
            payment_amount=p.payment_amount,
            granted_at=event_time(event, p.granted_at),
            expires_at=epoch_to_datetime(p.expires_at),
        )
        if not inserted:
            return False

        await session.execute(
            update(IntellectualProperty)
            .where(IntellectualProperty.ip_id == p.ip_id)
            .values(
                total_licenses_count=IntellectualProperty.total_licenses_count + 1,
                active_licenses_count=IntellectualProperty.active_licenses_count + 1,
                total_revenue=IntellectualProperty.total_revenue + p.payment_amount,
            )
        )
        return True

    async def _apply_fees_distributed(self, session: AsyncSession, event: DomainEvent) -> bool:
        p = event.payload
        at = event_time(event, p.timestamp)
        inserted = await self._insert_ignore(
            session,
            FeeDistribution,
            ["distribution_id"],
            FeeDistribution.distribution_id,
            distribution_id=event.event_id,
            fee_model_id=p.fee_model_id,
            model_name=p.model_name,
            transaction_amount=p.transaction_amount,
            total_fee_amount=p.total_fee_amount,
            token_type=p.token_type,
            distributed_at=at,
        )
        if not inserted:
            return False

        # Merge repeated recipients into one payment row
        payments: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        for split in p.recipients:
            amount = split.amount
            if amount is None:
                amount = p.total_fee_amount * (split.share_bps or 0) // 10_000
            entry = payments.setdefault(
                split.recipient,
                {"amount": 0, "share_bps": 0, "recipient_name": split.recipient_name},
            )
            entry["amount"] += amount
            entry["share_bps"] += split.share_bps or 0

        for recipient, entry in payments.items():
            await session.execute(
                dialect_insert(session, FeeRecipientPayment).values(
                    distribution_id=event.event_id,
                    recipient_address=recipient,
                    amount=entry["amount"],
                    share_bps=entry["share_bps"],
                )
            )
            stmt = dialect_insert(session, FeeRecipient).values(
                recipient_address=recipient,
                recipient_name=entry["recipient_name"],
                total_collected=entry["amount"],
                updated_at=at,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["recipient_address"],
                set_={
                    "total_collected": FeeRecipient.total_collected + stmt.excluded.total_collected,
                    "recipient_name": func.coalesce(stmt.excluded.recipient_name, FeeRecipient.recipient_name),
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            await session.execute(stmt)
        return True
