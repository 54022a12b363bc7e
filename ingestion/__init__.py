"""
Checkpoint ingestion pipeline for the MySocial indexer.

This package turns the chain's checkpoint stream into the relational
projection defined in models:

Modules:
    runner: IngestionCoordinator, the fetch/extract/apply/advance loop
    checkpoint: ProgressCursorStore, the durable per-worker cursor
    reconciler: ReconciliationSweeper, counter drift detection and repair
    scheduler: APScheduler integration for periodic reconciliation

Subpackages:
    extractors: CheckpointSourceClient, HTTP fetch with retry and backoff
    transformers: EventExtractor, raw chain events to typed DomainEvents
    loaders: ProjectionWriter, one transaction per checkpoint

Architecture:
    Each checkpoint moves through four phases:

    1. Fetch - Download checkpoint N (up to k fetched ahead concurrently)
    2. Extract - Decode recognized events in transaction order
    3. Apply - Write every event of N in a single transaction
    4. Advance - Record N as processed once the apply has committed

    Every write is idempotent, so a crash between Apply and Advance only
    causes checkpoint N to be replayed without changing the projection.

Usage:
    from ingestion.extractors.checkpoint_source import CheckpointSourceClient
    from ingestion.transformers.event_extractor import EventExtractor
    from ingestion.loaders.projection_writer import ProjectionWriter
    from ingestion.checkpoint import ProgressCursorStore
    from ingestion.runner import IngestionCoordinator

Example:
    async with CheckpointSourceClient() as source:
        coordinator = IngestionCoordinator(
            source=source,
            extractor=EventExtractor(settings.MYSOCIAL_PACKAGE_ADDRESSES),
            writer=ProjectionWriter(async_session_maker),
            cursor_store=ProgressCursorStore(async_session_maker),
        )
        summary = await coordinator.run()

Error Handling:
    Fatal conditions raise exceptions from core.exceptions and leave the
    cursor at the last committed checkpoint. Per-event validation failures
    are recorded in ingestion_errors and never stop the pipeline.
"""

__all__ = [
    "IngestionCoordinator",
    "ProgressCursorStore",
    "ReconciliationSweeper",
    "ReconciliationScheduler",
    "CheckpointSourceClient",
    "EventExtractor",
    "ProjectionWriter",
]
