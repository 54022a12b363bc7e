"""
Pydantic schemas for data validation and serialization.

This package defines the Pydantic models that sit on the boundaries of the
ingestion pipeline:

Schemas:
    checkpoint: Wire envelope of a checkpoint (transactions and raw events)
    events: EventKind registry, typed payloads, DomainEvent and RejectedEvent
    api: Health endpoint response models

Features:
    - Tolerant decoding: unknown fields ignored, alternate field names accepted
    - Per-event validation so one bad payload never poisons a checkpoint
    - OpenAPI schema generation for FastAPI

Usage:
    from schemas.checkpoint import Checkpoint
    from schemas.events import DomainEvent, EventKind
    from schemas.api import HealthCheckResponse

Example:
    checkpoint = Checkpoint.model_validate(response.json())
    for tx in checkpoint.transactions:
        for event in tx.events:
            print(event.event_type)
"""

__all__ = [
    "Checkpoint",
    "Transaction",
    "ChainEvent",
    "EventKind",
    "DomainEvent",
    "RejectedEvent",
    "ExtractionResult",
    "HealthCheckResponse",
]
