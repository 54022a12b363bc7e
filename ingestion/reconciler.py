"""
Reconciliation sweeper for derived counters.

Counters on profiles and platforms are maintained incrementally by the
projection writer. The sweeper treats the relationship tables as the source
of truth: it finds rows whose counter differs from COUNT(*) over the source
table and corrects them one at a time, each in a short transaction holding a
row lock.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.exceptions import ReconciliationError
from models import Content, Follow, Platform, PlatformMembership, Profile
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterSpec:
    """A derived counter column and the correlated COUNT(*) it must equal."""
    name: str
    model: Any
    key: Any
    counter: Any
    actual: Callable[[], Any]


def _count(source, *criteria):
    return select(func.count()).select_from(source).where(*criteria).scalar_subquery()


COUNTER_SPECS: List[CounterSpec] = [
    CounterSpec(
        name="profiles.followers_count",
        model=Profile,
        key=Profile.owner_address,
        counter=Profile.followers_count,
        actual=lambda: _count(Follow, Follow.following_address == Profile.owner_address),
    ),
    CounterSpec(
        name="profiles.following_count",
        model=Profile,
        key=Profile.owner_address,
        counter=Profile.following_count,
        actual=lambda: _count(Follow, Follow.follower_address == Profile.owner_address),
    ),
    CounterSpec(
        name="profiles.content_count",
        model=Profile,
        key=Profile.owner_address,
        counter=Profile.content_count,
        actual=lambda: _count(Content, Content.creator_address == Profile.owner_address),
    ),
    CounterSpec(
        name="profiles.platforms_joined",
        model=Profile,
        key=Profile.owner_address,
        counter=Profile.platforms_joined,
        actual=lambda: _count(
            PlatformMembership,
            or_(
                PlatformMembership.profile_id == Profile.owner_address,
                PlatformMembership.profile_id == Profile.profile_id,
            ),
        ),
    ),
    CounterSpec(
        name="platforms.total_users_count",
        model=Platform,
        key=Platform.platform_id,
        counter=Platform.total_users_count,
        actual=lambda: _count(PlatformMembership, PlatformMembership.platform_id == Platform.platform_id),
    ),
    CounterSpec(
        name="platforms.content_count",
        model=Platform,
        key=Platform.platform_id,
        counter=Platform.content_count,
        actual=lambda: _count(Content, Content.platform_id == Platform.platform_id),
    ),
]


class ReconciliationSweeper:
    """Recompute counters from relationship tables and fix drift."""

    def __init__(self, session_factory: async_sessionmaker, specs: Optional[List[CounterSpec]] = None):
        self.session_factory = session_factory
        self.specs = specs or COUNTER_SPECS

    async def find_drift(self, spec: CounterSpec) -> List[Any]:
        """Keys of rows whose counter differs from the recount."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(spec.key).where(spec.counter != spec.actual()).order_by(spec.key)
            )
            return list(result.scalars().all())

    async def correct(self, spec: CounterSpec, key_value: Any) -> bool:
        """
        Lock one row, recount under the lock and write the exact value.

        Returns True when the stored counter changed.
        """
        async with self.session_factory() as session:
            async with session.begin():
                before = await session.scalar(
                    select(spec.counter).where(spec.key == key_value).with_for_update()
                )
                if before is None:
                    return False
                after = await session.scalar(
                    update(spec.model)
                    .where(spec.key == key_value)
                    .values({spec.counter: spec.actual()})
                    .returning(spec.counter)
                    .execution_options(synchronize_session=False)
                )
        if before != after:
            logger.info(f"Corrected {spec.name} for {key_value}: {before} -> {after}")
            return True
        return False

    async def sweep(self) -> Dict[str, Any]:
        """
        Run one reconciliation pass over every counter.

        Returns:
            Dictionary with per-counter correction counts and rows_corrected

        Raises:
            ReconciliationError: A database error interrupted the pass
        """
        report: Dict[str, Any] = {}
        total = 0

        for spec in self.specs:
            try:
                drifted = await self.find_drift(spec)
                corrected = 0
                for key_value in drifted:
                    if await self.correct(spec, key_value):
                        corrected += 1
            except SQLAlchemyError as e:
                raise ReconciliationError(
                    f"Reconciliation of {spec.name} failed",
                    context={"counter": spec.name, "rows_corrected": total},
                    original_exception=e,
                )
            report[spec.name] = corrected
            total += corrected

        report["rows_corrected"] = total
        if total:
            logger.warning(f"Reconciliation corrected {total} counter values")
        else:
            logger.info("Reconciliation found no counter drift")
        return report
