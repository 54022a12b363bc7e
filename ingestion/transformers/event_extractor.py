"""
Map raw chain events into typed domain events with Pydantic validation
"""

from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

from pydantic import ValidationError

from schemas.checkpoint import ChainEvent, Checkpoint
from schemas.events import (
    EVENT_REGISTRY,
    PAYLOAD_MODELS,
    DomainEvent,
    EventKind,
    EventPayload,
    ExtractionResult,
    RejectedEvent,
    epoch_to_datetime,
)
import logging

logger = logging.getLogger(__name__)

# Containers the payload may be nested under, tried after the object itself
PAYLOAD_WRAPPERS = ("fields", "value", "data", "parsed_json")


def normalize_address(address: str) -> str:
    """Lowercase hex address without 0x prefix or leading zeros."""
    value = address.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    return value.lstrip("0") or "0"


def parse_event_type(event_type: str) -> Optional[Tuple[str, str, str]]:
    """
    Split ``<package>::<module>::<Name><generics>`` into its parts.

    Returns None when the string is not a fully qualified struct type.
    """
    base = event_type.split("<", 1)[0].strip()
    parts = base.split("::")
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


class EventExtractor:
    """
    Turn a checkpoint into an ordered list of domain events.

    Handles:
    - Filtering by struct name against the event registry
    - Optional package allow-list
    - Payload unwrapping and validation
    - Stable event ids

    The extractor is pure: no I/O, no state between calls.
    """

    def __init__(self, package_addresses: Optional[Iterable[str]] = None):
        addresses = [normalize_address(a) for a in (package_addresses or []) if a]
        self.package_addresses = frozenset(addresses)

    def classify(self, event_type: str) -> Optional[EventKind]:
        """Return the kind for a recognized event type, None for anything else."""
        parsed = parse_event_type(event_type)
        if parsed is None:
            return None
        package, _module, name = parsed
        if self.package_addresses and normalize_address(package) not in self.package_addresses:
            return None
        return EVENT_REGISTRY.get(name)

    def extract(self, checkpoint: Checkpoint) -> ExtractionResult:
        """
        Extract domain events in chain order.

        Unknown event types are dropped silently. Recognized events whose
        payload fails validation are returned as rejected, not raised.
        """
        result = ExtractionResult()

        for tx in checkpoint.transactions:
            for index, raw in enumerate(tx.events):
                kind = self.classify(raw.event_type)
                if kind is None:
                    continue

                event_id = raw.id or f"{tx.digest}:{index}"
                payload, error = self._decode_payload(PAYLOAD_MODELS[kind], raw.parsed_json)

                if payload is None:
                    logger.warning(
                        f"Rejected {raw.event_type} event {event_id} "
                        f"in checkpoint {checkpoint.sequence_number}: {error}"
                    )
                    result.rejected.append(
                        RejectedEvent(
                            event_type=raw.event_type,
                            event_id=event_id,
                            checkpoint_sequence=checkpoint.sequence_number,
                            error_type="parse",
                            reason=error,
                            payload=raw.parsed_json,
                        )
                    )
                    continue

                result.events.append(
                    DomainEvent(
                        kind=kind,
                        event_type=raw.event_type,
                        event_id=event_id,
                        tx_digest=tx.digest,
                        checkpoint_sequence=checkpoint.sequence_number,
                        timestamp=epoch_to_datetime(self._timestamp_ms(raw, tx.timestamp_ms, checkpoint)),
                        payload=payload,
                        raw=raw.parsed_json,
                    )
                )

        if result.events or result.rejected:
            logger.debug(
                f"Checkpoint {checkpoint.sequence_number}: extracted {len(result.events)} events, "
                f"rejected {len(result.rejected)}"
            )
        return result

    @staticmethod
    def _decode_payload(
        model: Type[EventPayload],
        data: Dict[str, Any],
    ) -> Tuple[Optional[EventPayload], str]:
        """Validate the payload itself, then each known wrapper around it."""
        candidates: List[Dict[str, Any]] = [data]
        for key in PAYLOAD_WRAPPERS:
            nested = data.get(key)
            if isinstance(nested, dict):
                candidates.append(nested)

        first_error: Optional[ValidationError] = None
        for candidate in candidates:
            try:
                return model.model_validate(candidate), ""
            except ValidationError as e:
                if first_error is None:
                    first_error = e

        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
            for err in first_error.errors()
        )
        return None, reason

    @staticmethod
    def _timestamp_ms(raw: ChainEvent, tx_timestamp_ms: Optional[int], checkpoint: Checkpoint) -> Optional[int]:
        if raw.timestamp_ms is not None:
            return raw.timestamp_ms
        if tx_timestamp_ms is not None:
            return tx_timestamp_ms
        return checkpoint.timestamp_ms
