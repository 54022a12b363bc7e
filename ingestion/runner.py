# ============================================================================
# File: ingestion/runner.py
# Description: Checkpoint ingestion coordinator with bounded prefetch
# ============================================================================
"""
Ingestion Coordinator - Orchestrates Fetch, Extract, Apply, Advance.

This module drives the checkpoint pipeline with:
- Resume from the durable progress cursor
- Bounded prefetch: up to k checkpoints fetched concurrently
- Strictly ordered apply, one transaction per checkpoint
- Cursor advance only after the projection commit
- Graceful shutdown between checkpoints, never in the middle of an apply
"""

import asyncio
from enum import Enum
from typing import Any, Dict, Optional

from core.config import settings
from core.exceptions import CheckpointNotAvailableError, IndexerException
from ingestion.checkpoint import ProgressCursorStore
from ingestion.extractors.checkpoint_source import CheckpointSourceClient
from ingestion.loaders.projection_writer import ProjectionWriter
from ingestion.transformers.event_extractor import EventExtractor
from schemas.checkpoint import Checkpoint
import logging

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    EXTRACTING = "extracting"
    APPLYING = "applying"
    ADVANCING = "advancing"
    STOPPED = "stopped"
    FAILED = "failed"


class IngestionCoordinator:
    """
    Checkpoint ingestion loop for one worker.

    Responsibilities:
    - Determine the resume point (cursor + 1, else the configured start)
    - Keep a prefetch window of ``concurrency`` checkpoints in flight
    - Apply checkpoints in increasing order, never skipping a gap
    - Advance the cursor after each committed checkpoint
    - Fail fast on fatal errors without advancing the cursor
    """

    def __init__(
        self,
        source: CheckpointSourceClient,
        extractor: EventExtractor,
        writer: ProjectionWriter,
        cursor_store: ProgressCursorStore,
        worker_id: Optional[str] = None,
        start_checkpoint: Optional[int] = None,
        concurrency: Optional[int] = None,
        poll_interval: Optional[float] = None,
        end_checkpoint: Optional[int] = None,
    ):
        self.source = source
        self.extractor = extractor
        self.writer = writer
        self.cursor_store = cursor_store
        self.worker_id = worker_id or settings.WORKER_ID
        self.start_checkpoint = start_checkpoint if start_checkpoint is not None else settings.START_CHECKPOINT
        self.concurrency = max(1, concurrency or settings.INGESTION_CONCURRENCY)
        self.poll_interval = poll_interval if poll_interval is not None else settings.POLL_INTERVAL_SECONDS
        self.end_checkpoint = end_checkpoint

        self.state = WorkerState.IDLE
        self._stop_event = asyncio.Event()

    def stop(self):
        """Request shutdown; the current checkpoint finishes first."""
        logger.info(f"Stop requested for worker {self.worker_id}")
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    async def resume_point(self) -> int:
        last = await self.cursor_store.read(self.worker_id)
        if last is None:
            return self.start_checkpoint
        return last + 1

    async def _wait_for_stop(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds; True if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def _fetch_when_available(self, sequence_number: int) -> Optional[Checkpoint]:
        """Poll until the chain produces ``sequence_number``; None when stopped first."""
        while True:
            try:
                return await self.source.fetch(sequence_number)
            except CheckpointNotAvailableError:
                logger.debug(
                    f"Checkpoint {sequence_number} not yet available, "
                    f"retrying in {self.poll_interval}s"
                )
                if await self._wait_for_stop(self.poll_interval):
                    return None

    async def _next_checkpoint(self, fetch: "asyncio.Task[Optional[Checkpoint]]") -> Optional[Checkpoint]:
        """Wait for a prefetch task, returning early with None if stopped."""
        stop_waiter = asyncio.ensure_future(self._stop_event.wait())
        try:
            done, _ = await asyncio.wait({fetch, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_waiter.cancel()
        if fetch not in done:
            return None
        return fetch.result()

    async def run(self) -> Dict[str, Any]:
        """
        Run until stopped, until ``end_checkpoint`` is applied, or until a fatal error.

        Returns:
            Dictionary with run statistics:
            - status: "completed" (end reached) or "stopped"
            - checkpoints_processed: Checkpoints applied and advanced
            - last_checkpoint: Last checkpoint advanced in this run
            - events_applied / events_rejected: Totals across checkpoints

        Raises:
            CheckpointFetchError: Upstream failure after retries
            ProjectionError: A checkpoint transaction failed
            CursorError: The cursor could not be advanced
        """
        checkpoints_processed = 0
        events_applied = 0
        events_rejected = 0
        last_checkpoint: Optional[int] = None
        pending: Dict[int, "asyncio.Task[Optional[Checkpoint]]"] = {}
        status = "stopped"

        try:
            next_seq = await self.resume_point()
            logger.info(
                f"Worker {self.worker_id} starting at checkpoint {next_seq} "
                f"(prefetch depth {self.concurrency})"
            )

            while not self._stop_event.is_set():
                if self.end_checkpoint is not None and next_seq > self.end_checkpoint:
                    status = "completed"
                    break

                # --------------------------------------------------
                # PHASE 1: FETCH (prefetch window)
                # --------------------------------------------------
                self.state = WorkerState.FETCHING
                upper = next_seq + self.concurrency
                if self.end_checkpoint is not None:
                    upper = min(upper, self.end_checkpoint + 1)
                for seq in range(next_seq, upper):
                    if seq not in pending:
                        pending[seq] = asyncio.create_task(self._fetch_when_available(seq))

                checkpoint = await self._next_checkpoint(pending[next_seq])
                if checkpoint is None:
                    break
                del pending[next_seq]

                # --------------------------------------------------
                # PHASE 2: EXTRACT
                # --------------------------------------------------
                self.state = WorkerState.EXTRACTING
                extraction = self.extractor.extract(checkpoint)

                # --------------------------------------------------
                # PHASE 3: APPLY (one transaction)
                # --------------------------------------------------
                self.state = WorkerState.APPLYING
                result = await self.writer.apply(next_seq, extraction.events, extraction.rejected)

                # --------------------------------------------------
                # PHASE 4: ADVANCE CURSOR
                # --------------------------------------------------
                self.state = WorkerState.ADVANCING
                await self.cursor_store.advance(self.worker_id, next_seq)

                checkpoints_processed += 1
                events_applied += result["events_applied"]
                events_rejected += result["events_rejected"]
                last_checkpoint = next_seq
                next_seq += 1
                self.state = WorkerState.IDLE

        except IndexerException as e:
            self.state = WorkerState.FAILED
            logger.error(
                f"Worker {self.worker_id} failed: {e.message}",
                extra={"error_context": e.to_dict()},
            )
            raise

        except Exception as e:
            self.state = WorkerState.FAILED
            logger.exception(f"Unexpected error in worker {self.worker_id}")
            raise IndexerException(
                "Unexpected error in ingestion loop",
                context={
                    "worker_id": self.worker_id,
                    "last_checkpoint": last_checkpoint,
                },
                original_exception=e,
            )

        finally:
            for task in pending.values():
                task.cancel()
            if pending:
                await asyncio.gather(*pending.values(), return_exceptions=True)

        self.state = WorkerState.STOPPED
        summary = {
            "worker_id": self.worker_id,
            "status": status,
            "checkpoints_processed": checkpoints_processed,
            "last_checkpoint": last_checkpoint,
            "events_applied": events_applied,
            "events_rejected": events_rejected,
        }
        logger.info(
            f"Worker {self.worker_id} {status}: {checkpoints_processed} checkpoints, "
            f"last {last_checkpoint}"
        )
        return summary
