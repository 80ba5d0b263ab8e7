import pytest

from app.messaging import (
    annotate_latest_status,
    normalize_message_status,
    parse_created_at_ms,
    pick_latest_status,
    status_rank,
    to_epoch_ms,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("sent", "sent"),
        ("  DELIVERED ", "delivered"),
        ("delivered_to_device", "delivered"),
        ("Read", "read"),
        ("read_by_recipient", "read"),
        ("failed", None),
        ("readable", None),
        ("", None),
        (None, None),
        (3, None),
    ],
)
def test_normalize_message_status(raw, expected):
    assert normalize_message_status(raw) == expected


def test_status_rank_orders_labels():
    assert status_rank("read") > status_rank("delivered") > status_rank("sent") > 0
    assert status_rank("failed") == 0


def test_to_epoch_ms_infers_unit_from_magnitude():
    assert to_epoch_ms(1_700_000_000) == 1_700_000_000_000
    assert to_epoch_ms("1700000000") == 1_700_000_000_000
    assert to_epoch_ms(1_700_000_000_123) == 1_700_000_000_123
    assert to_epoch_ms(float("nan")) is None
    assert to_epoch_ms(True) is None
    assert to_epoch_ms("17e8") is None
    assert to_epoch_ms("-5") is None


def test_to_epoch_ms_rejects_non_ascii_digits():
    assert to_epoch_ms("١٢٣") is None
    assert to_epoch_ms("１２３") is None


def test_huge_numeric_timestamp_counts_as_unknown_time():
    assert to_epoch_ms("1" * 5000) is None
    events = [
        {"status": "read", "timestamp": "1" * 5000},
        {"status": "sent", "timestamp": 5},
    ]
    assert pick_latest_status(events) == "sent"


def test_parse_created_at_ms_truncates_fraction_and_defaults_to_utc():
    with_micros = parse_created_at_ms("2024-05-01T10:00:00.123456Z")
    plain = parse_created_at_ms("2024-05-01T10:00:00.123+00:00")
    naive = parse_created_at_ms("2024-05-01T10:00:00.123")
    assert with_micros == plain == naive
    almost_next = parse_created_at_ms("2024-05-01T10:00:00.123999Z")
    assert almost_next == plain
    assert almost_next != parse_created_at_ms("2024-05-01T10:00:00.124Z")
    assert parse_created_at_ms("yesterday") is None
    assert parse_created_at_ms("") is None


def test_latest_time_wins_regardless_of_order():
    events = [
        {"status": "read", "timestamp": 1_700_000_000},
        {"status": "sent", "timestamp": 1_700_000_100},
    ]
    assert pick_latest_status(events) == "sent"
    assert pick_latest_status(list(reversed(events))) == "sent"


def test_timestamp_in_seconds_and_milliseconds_compare_on_same_scale():
    events = [
        {"status": "delivered", "timestamp": 1_700_000_000_500},
        {"status": "read", "timestamp": "1700000000"},
    ]
    assert pick_latest_status(events) == "delivered"


def test_equal_times_fall_back_to_rank():
    events = [
        {"status": "read", "timestamp": 1_700_000_000},
        {"status": "delivered", "timestamp": 1_700_000_000},
    ]
    assert pick_latest_status(events) == "read"


def test_equal_times_prefer_later_created_at_before_rank():
    events = [
        {"status": "read", "timestamp": 1_700_000_000, "created_at": "2024-01-01T00:00:00Z"},
        {"status": "sent", "timestamp": 1_700_000_000, "created_at": "2024-01-01T00:00:05Z"},
    ]
    assert pick_latest_status(events) == "sent"


def test_known_time_beats_unknown_time():
    events = [
        {"status": "read"},
        {"status": "sent", "created_at": "2024-01-01T00:00:00Z"},
    ]
    assert pick_latest_status(events) == "sent"
    assert pick_latest_status(list(reversed(events))) == "sent"


def test_full_tie_prefers_later_entry():
    assert pick_latest_status([{"status": "sent"}, {"status": "SENT"}]) == "sent"
    assert pick_latest_status([{"status": "read"}, {"status": "sent"}]) == "read"


def test_unrecognised_and_malformed_entries_are_skipped():
    events = [
        "garbage",
        {"status": "failed", "timestamp": 1_900_000_000},
        {"status": "delivered_to_device", "timestamp": 1_700_000_000},
        None,
    ]
    assert pick_latest_status(events) == "delivered"


@pytest.mark.parametrize("events", [None, [], "read", {"status": "read"}, [{"status": "failed"}]])
def test_no_recognised_status_yields_none(events):
    assert pick_latest_status(events) is None


def test_annotate_latest_status_only_touches_status_lists():
    message = {"id": 1, "statuses": [{"status": "sent"}, {"status": "read"}]}
    annotated = annotate_latest_status(message)
    assert annotated["latest_status"] == "read"
    assert "latest_status" not in message

    assert annotate_latest_status({"id": 2}) == {"id": 2}
    assert annotate_latest_status({"id": 3, "statuses": []})["latest_status"] is None
    assert annotate_latest_status("raw") == "raw"
