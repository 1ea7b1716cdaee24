"""
Error kinds for prayer time resolution, persistence and scheduling.
All of them are recoverable: callers log and clear the badge rather than crash.
"""
from typing import Optional


class PrayerBadgeError(Exception):
    """Base class for prayer badge errors."""


class IncompleteScheduleError(PrayerBadgeError):
    """No usable prayer events for today or tomorrow."""


class StaleRecordError(PrayerBadgeError):
    """Persisted prayer times belong to another day; caller should recompute."""

    def __init__(self, stored_date: Optional[str], today: str):
        super().__init__(f"Stored prayer times are for {stored_date}, today is {today}")
        self.stored_date = stored_date
        self.today = today


class MalformedRecordError(PrayerBadgeError):
    """A persisted field could not be turned back into an instant."""

    def __init__(self, field: str, raw: object):
        super().__init__(f"Cannot reconstruct instant for {field}: {raw!r}")
        self.field = field
        self.raw = raw


class SchedulingConflictError(PrayerBadgeError):
    """A periodic trigger is already registered under this name."""

    def __init__(self, name: str):
        super().__init__(f"Alarm already scheduled: {name}")
        self.name = name
