"""
Integration tests for counter reconciliation
"""

from unittest.mock import patch

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from core.exceptions import ReconciliationError
from ingestion.loaders.projection_writer import ProjectionWriter
from ingestion.reconciler import COUNTER_SPECS, ReconciliationSweeper
from ingestion.scheduler import ReconciliationScheduler
from ingestion.transformers.event_extractor import EventExtractor
from models import Platform, Profile

A = "0xa"
B = "0xb"
C = "0xc"


async def seed(session_factory, make_checkpoint):
    """B has two followers, A posted twice, and both A and B joined a platform."""
    checkpoint = make_checkpoint(
        1,
        [
            ("ProfileCreatedEvent", {"profile_id": "0xp_a", "owner_address": A}),
            ("PlatformCreatedEvent", {"platform_id": "0xplat", "name": "Chirp", "developer": "0xdev"}),
            ("FollowEvent", {"follower": A, "following": B}),
            ("FollowEvent", {"follower": C, "following": B}),
            ("ContentCreatedEvent", {"content_id": "0xc1", "creator": A, "platform_id": "0xplat"}),
            ("ContentCreatedEvent", {"content_id": "0xc2", "creator": A, "platform_id": "0xplat"}),
            ("UserJoinedPlatformEvent", {"platform_id": "0xplat", "profile_id": "0xp_a"}),
            ("UserJoinedPlatformEvent", {"platform_id": "0xplat", "profile_id": B}),
        ],
    )
    extraction = EventExtractor().extract(checkpoint)
    await ProjectionWriter(session_factory).apply(1, extraction.events, extraction.rejected)


async def profile_counters(session_factory, address):
    async with session_factory() as session:
        profile = await session.scalar(select(Profile).where(Profile.owner_address == address))
        return (
            profile.followers_count,
            profile.following_count,
            profile.content_count,
            profile.platforms_joined,
        )


async def platform_counters(session_factory, platform_id="0xplat"):
    async with session_factory() as session:
        platform = await session.scalar(select(Platform).where(Platform.platform_id == platform_id))
        return platform.total_users_count, platform.content_count


class TestReconciliationSweeper:
    """Test drift detection and correction"""

    @pytest.mark.asyncio
    async def test_projection_counters_match_relationships(self, session_factory, make_checkpoint):
        """Test a clean projection has no drift"""
        await seed(session_factory, make_checkpoint)

        report = await ReconciliationSweeper(session_factory).sweep()

        assert report["rows_corrected"] == 0
        assert all(report[spec.name] == 0 for spec in COUNTER_SPECS)
        assert await profile_counters(session_factory, A) == (0, 1, 2, 1)
        assert await profile_counters(session_factory, B) == (2, 0, 0, 1)
        assert await platform_counters(session_factory) == (2, 2)

    @pytest.mark.asyncio
    async def test_corrupted_counters_are_repaired(self, session_factory, make_checkpoint):
        await seed(session_factory, make_checkpoint)
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Profile).where(Profile.owner_address == B).values(followers_count=7)
                )
                await session.execute(
                    update(Profile).where(Profile.owner_address == A).values(content_count=0, platforms_joined=5)
                )
                await session.execute(
                    update(Platform).where(Platform.platform_id == "0xplat").values(total_users_count=0)
                )

        report = await ReconciliationSweeper(session_factory).sweep()

        assert report["profiles.followers_count"] == 1
        assert report["profiles.content_count"] == 1
        assert report["profiles.platforms_joined"] == 1
        assert report["platforms.total_users_count"] == 1
        assert report["rows_corrected"] == 4
        assert await profile_counters(session_factory, B) == (2, 0, 0, 1)
        assert await profile_counters(session_factory, A) == (0, 1, 2, 1)
        assert await platform_counters(session_factory) == (2, 2)

        second = await ReconciliationSweeper(session_factory).sweep()
        assert second["rows_corrected"] == 0

    @pytest.mark.asyncio
    async def test_find_drift_lists_only_drifted_rows(self, session_factory, make_checkpoint):
        await seed(session_factory, make_checkpoint)
        async with session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(Profile).where(Profile.owner_address == C).values(following_count=0)
                )

        spec = next(s for s in COUNTER_SPECS if s.name == "profiles.following_count")
        sweeper = ReconciliationSweeper(session_factory)

        assert await sweeper.find_drift(spec) == [C]
        assert await sweeper.correct(spec, C) is True
        assert await sweeper.correct(spec, C) is False
        assert await sweeper.correct(spec, "0xmissing") is False

    @pytest.mark.asyncio
    async def test_database_errors_raise_reconciliation_error(self, session_factory):
        sweeper = ReconciliationSweeper(session_factory)

        with patch.object(
            ReconciliationSweeper,
            "find_drift",
            side_effect=OperationalError("SELECT", {}, Exception("database is gone")),
        ):
            with pytest.raises(ReconciliationError) as exc_info:
                await sweeper.sweep()

        assert exc_info.value.context["counter"] == COUNTER_SPECS[0].name


class TestReconciliationScheduler:
    """Test the periodic sweep job"""

    @pytest.mark.asyncio
    async def test_job_runs_sweep(self, session_factory, make_checkpoint):
        await seed(session_factory, make_checkpoint)
        scheduler = ReconciliationScheduler(ReconciliationSweeper(session_factory), interval_minutes=15)

        report = await scheduler.run_reconcile_job()

        assert report["rows_corrected"] == 0

    @pytest.mark.asyncio
    async def test_job_logs_and_survives_failures(self, session_factory):
        sweeper = ReconciliationSweeper(session_factory)
        scheduler = ReconciliationScheduler(sweeper, interval_minutes=15)

        with patch.object(sweeper, "sweep", side_effect=ReconciliationError("boom")):
            report = await scheduler.run_reconcile_job()

        assert report is None

    @pytest.mark.asyncio
    async def test_start_registers_interval_job(self, session_factory):
        scheduler = ReconciliationScheduler(ReconciliationSweeper(session_factory), interval_minutes=5)

        scheduler.start()
        try:
            jobs = scheduler.scheduler.get_jobs()
            assert [job.id for job in jobs] == ["reconcile_job"]
        finally:
            scheduler.stop()
