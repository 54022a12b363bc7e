"""
Script to run the checkpoint indexer until stopped
"""

import argparse
import asyncio
import signal
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_engine, build_session_maker
from core.exceptions import IndexerException
from core.logging import setup_logging
from ingestion.checkpoint import ProgressCursorStore
from ingestion.extractors.checkpoint_source import CheckpointSourceClient
from ingestion.loaders.projection_writer import ProjectionWriter
from ingestion.reconciler import ReconciliationSweeper
from ingestion.runner import IngestionCoordinator
from ingestion.scheduler import ReconciliationScheduler
from ingestion.transformers.event_extractor import EventExtractor

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the MySocial checkpoint indexer")
    parser.add_argument("--worker-id", default=settings.WORKER_ID)
    parser.add_argument("--start", type=int, default=settings.START_CHECKPOINT,
                        help="First checkpoint when the worker has no cursor yet")
    parser.add_argument("--end", type=int, default=None,
                        help="Stop after applying this checkpoint (inclusive)")
    parser.add_argument("--no-reconcile", action="store_true",
                        help="Do not run the periodic reconciliation sweep")
    return parser.parse_args(argv)


async def run_indexer(args) -> int:
    """Run the ingestion loop; returns the process exit code"""
    engine = build_engine()
    session_factory = build_session_maker(engine)

    source = CheckpointSourceClient()
    coordinator = IngestionCoordinator(
        source=source,
        extractor=EventExtractor(settings.MYSOCIAL_PACKAGE_ADDRESSES),
        writer=ProjectionWriter(session_factory),
        cursor_store=ProgressCursorStore(session_factory),
        worker_id=args.worker_id,
        start_checkpoint=args.start,
        end_checkpoint=args.end,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, coordinator.stop)

    scheduler = None
    if not args.no_reconcile:
        scheduler = ReconciliationScheduler(ReconciliationSweeper(session_factory))
        scheduler.start()

    try:
        result = await coordinator.run()
        logger.info(
            f"Indexer {result['status']}: {result['checkpoints_processed']} checkpoints, "
            f"last={result['last_checkpoint']}"
        )
        return 0
    except IndexerException as e:
        logger.error(f"Indexer stopped on fatal error: {e}")
        return 1
    finally:
        if scheduler is not None:
            scheduler.stop()
        await source.aclose()
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run_indexer(parse_args())))
