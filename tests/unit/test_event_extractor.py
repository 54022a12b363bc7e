"""
Unit tests for event extraction
"""

from ingestion.transformers.event_extractor import (
    EventExtractor,
    normalize_address,
    parse_event_type,
)
from schemas.checkpoint import Checkpoint
from schemas.events import EventKind, FollowPayload


class TestEventTypeParsing:
    """Test event type string handling"""

    def test_parse_strips_generics(self):
        assert parse_event_type("0x2::social::FollowEvent<0x2::sui::SUI>") == (
            "0x2", "social", "FollowEvent"
        )

    def test_parse_rejects_partial_types(self):
        assert parse_event_type("FollowEvent") is None
        assert parse_event_type("0x2::FollowEvent") is None
        assert parse_event_type("0x2::::FollowEvent") is None

    def test_normalize_address(self):
        assert normalize_address("0x0002") == normalize_address("0x2") == "2"
        assert normalize_address("0xABC") == "abc"


class TestEventExtractor:
    """Test checkpoint to domain event mapping"""

    def test_extracts_in_chain_order(self, make_checkpoint):
        """Test events keep transaction order and event order"""
        checkpoint = make_checkpoint(
            5,
            [
                ("ProfileCreatedEvent", {"profile_id": "0xp1", "owner_address": "0xa"}),
                ("FollowEvent", {"follower": "0xa", "following": "0xb"}),
            ],
            [
                ("UnfollowEvent", {"follower": "0xa", "unfollowed": "0xb"}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert [e.kind for e in result.events] == [
            EventKind.PROFILE_CREATED,
            EventKind.FOLLOWED,
            EventKind.UNFOLLOWED,
        ]
        assert [e.event_id for e in result.events] == ["tx5_0:0", "tx5_0:1", "tx5_1:0"]
        assert all(e.checkpoint_sequence == 5 for e in result.events)
        assert result.events[2].payload.following == "0xb"
        assert result.rejected == []

    def test_unknown_events_are_dropped(self, make_checkpoint, make_event):
        """Test unrecognized event types are discarded silently"""
        checkpoint = make_checkpoint(
            1,
            [
                ("CoinMinted", {"amount": 5}),
                make_event("FollowEvent", {"follower": "0xa", "following": "0xb"}),
                {"type": "not-a-struct-type", "parsedJson": {}},
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert len(result.events) == 1
        assert result.events[0].kind == EventKind.FOLLOWED
        assert result.rejected == []

    def test_package_allow_list(self, make_checkpoint, make_event):
        """Test events from other packages are ignored when an allow-list is set"""
        checkpoint = make_checkpoint(
            1,
            [
                make_event("FollowEvent", {"follower": "0xa", "following": "0xb"}, package="0x00beef"),
                make_event("FollowEvent", {"follower": "0xa", "following": "0xc"}, package="0xdead"),
            ],
        )

        result = EventExtractor(package_addresses=["0xBEEF"]).extract(checkpoint)

        assert len(result.events) == 1
        assert result.events[0].payload.following == "0xb"

    def test_generic_suffix_and_source_ids(self, make_checkpoint, make_event):
        """Test generic suffixes are stripped and chain ids are kept"""
        event = make_event("FeesDistributedEvent", {
            "fee_model_id": "0xfee",
            "transaction_amount": "1000",
            "total_fee_amount": "50",
        }, event_id="digest:3")
        event["type"] += "<0x2::sui::SUI>"

        result = EventExtractor().extract(make_checkpoint(2, [event]))

        assert len(result.events) == 1
        decoded = result.events[0]
        assert decoded.kind == EventKind.FEES_DISTRIBUTED
        assert decoded.event_id == "digest:3"
        assert decoded.payload.total_fee_amount == 50

    def test_wrapped_payloads_and_object_ids(self, make_checkpoint):
        """Test payloads nested under 'fields' and {'id': ...} object ids"""
        checkpoint = make_checkpoint(
            3,
            [
                ("PlatformJoinedEvent", {
                    "fields": {
                        "platform_id": {"id": "0xplat"},
                        "user": "0xa",
                        "extra": "ignored",
                    }
                }),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert len(result.events) == 1
        payload = result.events[0].payload
        assert payload.platform_id == "0xplat"
        assert payload.profile_id == "0xa"

    def test_aliases_map_to_same_kind(self, make_checkpoint):
        """Test alternate contract names map onto one kind"""
        checkpoint = make_checkpoint(
            4,
            [
                ("BlockAddedEvent", {"blocker_profile_id": "0xa", "blocked_profile_id": "0xb"}),
                ("UserBlockEvent", {"blocker": "0xa", "blocked": "0xc"}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert [e.kind for e in result.events] == [EventKind.PROFILE_BLOCKED] * 2
        assert [e.payload.blocked for e in result.events] == ["0xb", "0xc"]

    def test_invalid_payload_is_rejected_not_raised(self, make_checkpoint):
        """Test a malformed recognized event is returned as rejected"""
        checkpoint = make_checkpoint(
            6,
            [
                ("FollowEvent", {"follower": "0xa"}),
                ("FollowEvent", {"follower": "0xa", "following": "0xb"}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert len(result.events) == 1
        assert isinstance(result.events[0].payload, FollowPayload)
        assert len(result.rejected) == 1
        rejected = result.rejected[0]
        assert rejected.event_id == "tx6_0:0"
        assert rejected.error_type == "parse"
        assert rejected.checkpoint_sequence == 6
        assert "following" in rejected.reason

    def test_timestamp_falls_back_to_checkpoint(self, make_checkpoint):
        checkpoint = make_checkpoint(
            7,
            [("FollowEvent", {"follower": "0xa", "following": "0xb"})],
        )

        result = EventExtractor().extract(checkpoint)

        assert result.events[0].timestamp is not None
        assert result.events[0].timestamp.year == 2023

    def test_profile_block_contract_names(self, make_checkpoint):
        """Test block events from every contract version decode to the block kinds"""
        checkpoint = make_checkpoint(
            8,
            [
                ("BlockProfileEvent", {"blocker": "0xa", "blocked": "0xb"}),
                ("UnblockProfileEvent", {"blocker": "0xa", "unblocked": "0xb"}),
                ("EntityBlockedEvent", {
                    "blocker_id": "0xa",
                    "blocker_type": 0,
                    "blocked_id": "0xc",
                    "reason": "spam",
                    "timestamp": 1_700_000_000,
                }),
                ("EntityUnblockedEvent", {"blocker_id": "0xa", "unblocked_id": "0xc"}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert result.rejected == []
        assert [e.kind for e in result.events] == [
            EventKind.PROFILE_BLOCKED,
            EventKind.PROFILE_UNBLOCKED,
            EventKind.PROFILE_BLOCKED,
            EventKind.PROFILE_UNBLOCKED,
        ]
        assert [e.payload.blocker for e in result.events] == ["0xa"] * 4
        assert [e.payload.blocked for e in result.events] == ["0xb", "0xb", "0xc", "0xc"]


class TestValueBounds:
    """Test values that cannot be stored are handled before the database"""

    def test_out_of_range_payload_timestamp_is_rejected(self, make_checkpoint):
        checkpoint = make_checkpoint(
            9,
            [
                ("ProfileCreatedEvent", {"profile_id": "0xp1", "owner_address": "0xa", "created_at": 10 ** 20}),
                ("FollowEvent", {"follower": "0xa", "following": "0xb", "timestamp": -1}),
                ("FollowEvent", {"follower": "0xa", "following": "0xc"}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert [e.event_id for e in result.events] == ["tx9_0:2"]
        assert [r.error_type for r in result.rejected] == ["parse", "parse"]
        assert "created_at" in result.rejected[0].reason
        assert "timestamp" in result.rejected[1].reason

    def test_strings_longer_than_their_columns_are_rejected(self, make_checkpoint):
        checkpoint = make_checkpoint(
            10,
            [
                ("ProfileCreatedEvent", {"profile_id": "0xp1", "owner_address": "0xa", "username": "u" * 101}),
                ("ProfileUpdatedEvent", {"profile_id": "0xp1", "owner_address": "0xa", "display_name": "d" * 256}),
                ("ContentInteractionEvent", {"profile_id": "0xa", "content_id": "0xc1", "interaction_type": "i" * 51}),
                ("FollowEvent", {"follower": "0x" + "a" * 100, "following": "0xb"}),
                ("ProfileUpdatedEvent", {"profile_id": "0xp1", "owner_address": "0xa", "display_name": "d" * 255}),
            ],
        )

        result = EventExtractor().extract(checkpoint)

        assert len(result.rejected) == 4
        assert all(r.error_type == "parse" for r in result.rejected)
        assert [e.event_id for e in result.events] == ["tx10_0:4"]

    def test_out_of_range_event_timestamp_falls_back(self, make_checkpoint, make_event):
        """Test an unusable envelope timestamp is treated as absent"""
        event = make_event("FollowEvent", {"follower": "0xa", "following": "0xb"})
        event["timestampMs"] = 10 ** 20
        checkpoint = make_checkpoint(11, [event])

        result = EventExtractor().extract(checkpoint)

        assert result.rejected == []
        assert result.events[0].timestamp.year == 2023

    def test_out_of_range_checkpoint_timestamp_is_dropped(self):
        checkpoint = Checkpoint.model_validate({
            "sequenceNumber": 12,
            "timestampMs": -1,
            "transactions": [{"digest": "tx12", "timestampMs": 10 ** 20, "events": []}],
        })

        assert checkpoint.timestamp_ms is None
        assert checkpoint.transactions[0].timestamp_ms is None
