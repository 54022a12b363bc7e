"""
Pydantic schemas for the checkpoint wire envelope.

Only the envelope is validated here; event payloads are kept as raw
dictionaries and decoded by the event extractor. Unknown fields are ignored
so upstream additions do not break ingestion.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, List, Optional

from schemas.events import MAX_EPOCH_MS


def _epoch_ms_or_none(value: Any) -> Any:
    """Envelope timestamps outside the datetime range are treated as absent."""
    try:
        ms = int(value)
    except (TypeError, ValueError):
        return value
    return ms if 0 <= ms <= MAX_EPOCH_MS else None


class ChainEvent(BaseModel):
    """A single event emitted by a transaction."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    event_type: str = Field(validation_alias=AliasChoices("type", "event_type", "type_"))
    id: Optional[str] = None
    parsed_json: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("parsed_json", "parsedJson", "data"),
    )
    timestamp_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp_ms", "timestampMs"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def normalize_event_id(cls, v):
        """Accept either a plain id or a {txDigest, eventSeq} object."""
        if isinstance(v, dict):
            digest = v.get("txDigest") or v.get("tx_digest")
            seq = v.get("eventSeq", v.get("event_seq"))
            if digest is None or seq is None:
                return None
            return f"{digest}:{seq}"
        return v

    @field_validator("timestamp_ms", mode="before")
    @classmethod
    def bound_timestamp(cls, v):
        return _epoch_ms_or_none(v)

    @field_validator("parsed_json", mode="before")
    @classmethod
    def default_payload(cls, v):
        return v if v is not None else {}


class Transaction(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    digest: str
    timestamp_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp_ms", "timestampMs"),
    )
    events: List[ChainEvent] = Field(default_factory=list)

    @field_validator("timestamp_ms", mode="before")
    @classmethod
    def bound_timestamp(cls, v):
        return _epoch_ms_or_none(v)

    @field_validator("events", mode="before")
    @classmethod
    def default_events(cls, v):
        return v if v is not None else []


class Checkpoint(BaseModel):
    """A numbered checkpoint with its ordered transactions."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sequence_number: int = Field(
        ge=0,
        validation_alias=AliasChoices("sequence_number", "sequenceNumber"),
    )
    timestamp_ms: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("timestamp_ms", "timestampMs"),
    )
    transactions: List[Transaction] = Field(default_factory=list)

    @field_validator("timestamp_ms", mode="before")
    @classmethod
    def bound_timestamp(cls, v):
        return _epoch_ms_or_none(v)

    @field_validator("transactions", mode="before")
    @classmethod
    def default_transactions(cls, v):
        return v if v is not None else []
