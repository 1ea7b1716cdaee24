from datetime import datetime, timezone

import pytest

from prayer_badge.prayer.codec import (
    decode,
    encode,
    ensure_fresh,
    is_fresh,
    local_date_key,
)
from prayer_badge.prayer.errors import MalformedRecordError, StaleRecordError
from prayer_badge.prayer.events import EventName
from prayer_badge.prayer.resolver import resolve

from helpers import local, make_event_set


def test_round_trip_preserves_event_set():
    event_set = make_event_set()
    record = encode(event_set)
    assert record["date"] == "2025-03-01"
    assert record["kinds"]["times"]["fajr"] == "instant"
    assert decode(record) == event_set


def test_round_trip_resolves_the_same():
    event_set = make_event_set()
    decoded = decode(encode(event_set))
    now = local(2025, 3, 1, 21, 0)
    assert resolve(decoded, now) == resolve(event_set, now)


def test_encode_without_tomorrow():
    record = encode(make_event_set(tomorrow=False))
    assert record["tomorrowTimes"] is None
    assert "tomorrowTimes" not in record["kinds"]
    assert decode(record).tomorrow is None


def test_legacy_record_without_kinds():
    record = {
        "date": "2025-03-01",
        "times": {
            "fajr": "2025-03-01T04:12:00.000Z",
            "dhuhr": "2025-03-01T10:15:00.000Z",
        },
        "tomorrowTimes": {"fajr": "2025-03-02T04:11:00.000Z"},
        "calculatedAt": "2025-03-01T00:00:01.000Z",
    }
    event_set = decode(record)
    fajr = event_set.event(EventName.FAJR)
    assert fajr.timestamp == datetime(2025, 3, 1, 4, 12, tzinfo=timezone.utc)
    assert event_set.tomorrow.date == "2025-03-02"
    assert event_set.malformed == {}


def test_malformed_values_are_kept_raw():
    record = {
        "date": "2025-03-01",
        "times": {
            "fajr": "Turkey",
            "sunrise": "06:30",
            "dhuhr": "2025-03-01T10:15:00+00:00",
            "note": "ignored",
        },
        "tomorrowTimes": {"isha": "Tonight"},
    }
    event_set = decode(record)
    assert [ev.name for ev in event_set.events] == [EventName.DHUHR]
    assert event_set.malformed == {
        "times.fajr": "Turkey",
        "times.sunrise": "06:30",
        "tomorrowTimes.isha": "Tonight",
    }


def test_explicit_kind_beats_heuristic():
    record = {
        "date": "2025-03-01",
        "times": {"fajr": "2025-03-01T04:12:00+00:00"},
        "kinds": {"times": {"fajr": "plain"}},
    }
    assert decode(record).malformed == {"times.fajr": "2025-03-01T04:12:00+00:00"}


def test_non_mapping_today_section_is_kept_raw():
    event_set = decode({"date": "2025-03-01", "times": "garbage"})
    assert event_set.is_empty()
    assert event_set.tomorrow is None
    assert event_set.malformed == {"times": "garbage"}


def test_non_mapping_tomorrow_section_is_kept_raw():
    record = {
        "date": "2025-03-01",
        "times": {"dhuhr": "2025-03-01T10:15:00+00:00"},
        "tomorrowTimes": ["x"],
    }
    event_set = decode(record)
    assert [ev.name for ev in event_set.events] == [EventName.DHUHR]
    assert event_set.tomorrow is None
    assert event_set.malformed == {"tomorrowTimes": "['x']"}


def test_non_mapping_kinds_fall_back_to_heuristic():
    times = {"fajr": "2025-03-01T04:12:00+00:00"}
    event_set = decode({"date": "2025-03-01", "times": times, "kinds": "x"})
    assert [ev.name for ev in event_set.events] == [EventName.FAJR]
    assert event_set.malformed == {"kinds": "x"}

    event_set = decode({"date": "2025-03-01", "times": times, "kinds": {"times": 5}})
    assert [ev.name for ev in event_set.events] == [EventName.FAJR]
    assert event_set.malformed == {"kinds.times": "5"}


def test_record_without_date_is_malformed():
    with pytest.raises(MalformedRecordError):
        decode({"times": {}})
    with pytest.raises(MalformedRecordError):
        decode(["not", "a", "record"])


def test_freshness():
    record = encode(make_event_set())
    assert is_fresh(record, "2025-03-01")
    assert not is_fresh(record, "2025-03-02")
    assert not is_fresh(None, "2025-03-01")
    with pytest.raises(StaleRecordError) as excinfo:
        ensure_fresh(record, "2025-03-02")
    assert excinfo.value.stored_date == "2025-03-01"


def test_local_date_key_uses_local_calendar():
    assert local_date_key(local(2025, 3, 1, 23, 59)) == "2025-03-01"
    assert local_date_key(datetime(2025, 3, 1, 0, 1)) == "2025-03-01"
