from prayer_badge.prayer.errors import StaleRecordError
from prayer_badge.prayer.prayer_base import Location, Settings
from prayer_badge.prayer.service import (
    PRAYER_TIMES_KEY,
    apply_config_settings,
    install_defaults,
    load_prayer_times,
    load_settings,
    save_settings,
    store_prayer_times,
)

import pytest

from helpers import make_event_set


def test_set_get_and_remove(store):
    store.set({"a": 1, "b": {"nested": [1, 2]}})
    assert store.get(["a", "b", "missing"]) == {"a": 1, "b": {"nested": [1, 2]}}
    assert store.get_one("missing", "default") == "default"
    assert store.updated_at("a") is not None
    store.remove(["a"])
    assert store.get(["a"]) == {}


def test_set_replaces_whole_record(store):
    store.set({"location": {"latitude": 1, "longitude": 2, "city": "X"}})
    store.set({"location": {"latitude": 3, "longitude": 4}})
    assert store.get_one("location") == {"latitude": 3, "longitude": 4}


def test_listeners_get_changed_keys(store):
    seen = []

    def broken(changed):
        raise RuntimeError("listener failed")

    store.add_listener(broken)
    store.add_listener(seen.append)
    store.set({"a": 1, "b": 2})
    store.remove(["a"])
    store.remove_listener(seen.append)
    store.set({"c": 3})
    assert seen == [{"a", "b"}, {"a"}]


def test_defaults_and_settings(store):
    install_defaults(store)
    settings = load_settings(store)
    assert settings.location is None
    assert settings.calculation_method == "MWL"

    save_settings(store, Settings(Location(21.42, 39.83, "Makkah", "Saudi Arabia"), "UmmAlQura", "Hanafi", True))
    install_defaults(store)
    settings = load_settings(store)
    assert settings.location.display_name() == "Makkah, Saudi Arabia"
    assert settings.calculation_method == "UmmAlQura"
    assert settings.notifications_enabled


def test_apply_config_settings_only_writes_changes(store):
    install_defaults(store)
    seen = []
    store.add_listener(seen.append)
    config = {
        "location": {"latitude": 51.5, "longitude": -0.12},
        "calculation": {"method": "ISNA", "madhab": "Shafi"},
    }
    apply_config_settings(store, config)
    apply_config_settings(store, config)
    assert len(seen) == 1
    assert load_settings(store).location == Location(51.5, -0.12)


def test_prayer_times_round_trip(store):
    event_set = make_event_set()
    record = store_prayer_times(store, event_set)
    assert "calculatedAt" in record
    assert store.get_one(PRAYER_TIMES_KEY) == record
    assert load_prayer_times(store, "2025-03-01") == event_set


def test_load_prayer_times_missing_and_stale(store):
    assert load_prayer_times(store, "2025-03-01") is None
    store_prayer_times(store, make_event_set())
    with pytest.raises(StaleRecordError):
        load_prayer_times(store, "2025-03-02")
