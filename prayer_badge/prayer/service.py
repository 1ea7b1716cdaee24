"""
Service layer: save and load prayer times and settings through the record store.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from prayer_badge.core.store import RecordStore

from .codec import decode, encode, ensure_fresh
from .events import EventSet
from .prayer_base import DEFAULT_MADHAB, DEFAULT_METHOD, Location, Settings

PRAYER_TIMES_KEY = "prayerTimes"
LOCATION_KEY = "location"
METHOD_KEY = "calculationMethod"
MADHAB_KEY = "madhab"
NOTIFICATIONS_KEY = "notificationsEnabled"

SETTINGS_KEYS = (LOCATION_KEY, METHOD_KEY, MADHAB_KEY, NOTIFICATIONS_KEY)

DEFAULT_SETTINGS = {
    METHOD_KEY: DEFAULT_METHOD,
    MADHAB_KEY: DEFAULT_MADHAB,
    NOTIFICATIONS_KEY: False,
}


def install_defaults(store: RecordStore) -> None:
    """Write default settings that are not stored yet (first run)."""
    existing = store.get(DEFAULT_SETTINGS)
    missing = {k: v for k, v in DEFAULT_SETTINGS.items() if k not in existing}
    if missing:
        store.set(missing)


def load_settings(store: RecordStore) -> Settings:
    data = store.get(SETTINGS_KEYS)
    return Settings(
        location=Location.from_record(data.get(LOCATION_KEY)),
        calculation_method=data.get(METHOD_KEY) or DEFAULT_METHOD,
        madhab=data.get(MADHAB_KEY) or DEFAULT_MADHAB,
        notifications_enabled=bool(data.get(NOTIFICATIONS_KEY, False)),
    )


def save_settings(store: RecordStore, settings: Settings) -> None:
    records: Dict[str, Any] = {
        METHOD_KEY: settings.calculation_method,
        MADHAB_KEY: settings.madhab,
        NOTIFICATIONS_KEY: settings.notifications_enabled,
    }
    if settings.location is not None:
        records[LOCATION_KEY] = settings.location.to_record()
    store.set(records)


def apply_config_settings(store: RecordStore, config_data: Optional[Dict[str, Any]]) -> Optional[Settings]:
    """Copy location/calculation settings from the config file into the store."""
    if not config_data:
        return None
    calculation = config_data.get("calculation") or {}
    notifications = config_data.get("notifications") or {}
    location = Location.from_record(config_data.get("location"))
    current = load_settings(store)
    settings = Settings(
        location=location or current.location,
        calculation_method=calculation.get("method") or current.calculation_method,
        madhab=calculation.get("madhab") or current.madhab,
        notifications_enabled=bool(notifications.get("enabled", current.notifications_enabled)),
    )
    if settings != current:
        save_settings(store, settings)
    return settings


def store_prayer_times(
    store: RecordStore,
    event_set: EventSet,
    calculated_at: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Replace the stored prayer times record with this EventSet. Returns the stored record."""
    record = encode(event_set)
    record["calculatedAt"] = (calculated_at or datetime.now(timezone.utc)).isoformat()
    store.set({PRAYER_TIMES_KEY: record})
    return record


def get_prayer_times_record(store: RecordStore) -> Optional[Dict[str, Any]]:
    """Raw stored record, whatever its date."""
    return store.get_one(PRAYER_TIMES_KEY)


def load_prayer_times(store: RecordStore, today: Optional[str] = None) -> Optional[EventSet]:
    """Today's EventSet, None when nothing is stored. Raises StaleRecordError for another day's record."""
    record = get_prayer_times_record(store)
    if record is None:
        return None
    ensure_fresh(record, today)
    return decode(record)
