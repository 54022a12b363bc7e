"""
Pytest configuration and fixtures
"""

import os
from typing import AsyncGenerator, Dict, Iterable, List, Optional, Tuple, Union

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool

from core.database import build_session_maker
from core.exceptions import CheckpointNotAvailableError
from models import Base
from schemas.checkpoint import Checkpoint

# Set TEST_DATABASE_URL to run against PostgreSQL; defaults to a throwaway SQLite file
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")

PACKAGE = "0x2b1c"

ADDR_A = "0xa"
ADDR_B = "0xb"
ADDR_C = "0xc"


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine with a fresh schema"""
    url = TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'indexer_test.db'}"
    engine = create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return build_session_maker(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for assertions"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Checkpoint builders
# ============================================================================

EventSpec = Union[Tuple[str, Dict], Dict]


def chain_event(name: str, payload: Dict, package: str = PACKAGE, module: str = "social",
                event_id: Optional[str] = None) -> Dict:
    """Raw chain event as the checkpoint service returns it."""
    event = {"type": f"{package}::{module}::{name}", "parsedJson": payload}
    if event_id is not None:
        event["id"] = event_id
    return event


def build_checkpoint(sequence_number: int, *transactions: Iterable[EventSpec],
                     timestamp_ms: int = 1_700_000_000_000) -> Checkpoint:
    """
    Build a Checkpoint; each positional argument is one transaction's events.

    Events are either (struct_name, payload) tuples or raw event dicts.
    """
    txs: List[Dict] = []
    for index, events in enumerate(transactions):
        raw_events = [
            chain_event(*spec) if isinstance(spec, tuple) else spec
            for spec in events
        ]
        txs.append({"digest": f"tx{sequence_number}_{index}", "events": raw_events})
    return Checkpoint.model_validate({
        "sequenceNumber": sequence_number,
        "timestampMs": timestamp_ms + sequence_number,
        "transactions": txs,
    })


@pytest.fixture
def make_checkpoint():
    return build_checkpoint


@pytest.fixture
def make_event():
    return chain_event


class FakeCheckpointSource:
    """In-memory checkpoint source; missing checkpoints are 'not yet available'."""

    def __init__(self, checkpoints: Iterable[Checkpoint] = ()):
        self.checkpoints: Dict[int, Checkpoint] = {}
        self.failures: Dict[int, Exception] = {}
        self.requests: List[int] = []
        for checkpoint in checkpoints:
            self.add(checkpoint)

    def add(self, checkpoint: Checkpoint):
        self.checkpoints[checkpoint.sequence_number] = checkpoint

    async def fetch(self, sequence_number: int) -> Checkpoint:
        self.requests.append(sequence_number)
        if sequence_number in self.failures:
            raise self.failures[sequence_number]
        if sequence_number not in self.checkpoints:
            raise CheckpointNotAvailableError(
                f"Checkpoint {sequence_number} not yet available",
                context={"checkpoint": sequence_number},
            )
        return self.checkpoints[sequence_number]


@pytest.fixture
def fake_source():
    return FakeCheckpointSource()


@pytest.fixture
def social_checkpoint_101():
    """Two profiles created and A follows B."""
    return build_checkpoint(
        101,
        [
            ("ProfileCreatedEvent", {
                "profile_id": "0xp_a",
                "owner_address": ADDR_A,
                "display_name": "Alice",
                "created_at": 1_700_000_000,
            }),
            ("ProfileCreatedEvent", {
                "profile_id": "0xp_b",
                "owner_address": ADDR_B,
                "display_name": "Bob",
                "created_at": 1_700_000_000,
            }),
        ],
        [
            ("FollowEvent", {"follower": ADDR_A, "following": ADDR_B}),
        ],
    )
