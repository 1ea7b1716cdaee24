"""
Event set model: one calendar day's prayer events plus an optional lookahead day.
Events are kept in input order; ordering is done by readers (see resolver).
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import IncompleteScheduleError


class EventName(Enum):
    """Daily events in canonical order. Sunrise is informational, not a prayer."""
    FAJR = "Fajr"
    SUNRISE = "Sunrise"
    DHUHR = "Dhuhr"
    ASR = "Asr"
    MAGHRIB = "Maghrib"
    ISHA = "Isha"

    @property
    def key(self) -> str:
        """Storage key, e.g. 'fajr'."""
        return self.value.lower()

    @property
    def order(self) -> int:
        return _CANONICAL_ORDER.index(self)

    @property
    def is_prayer(self) -> bool:
        return self is not EventName.SUNRISE

    @classmethod
    def from_key(cls, key: Any) -> Optional["EventName"]:
        if isinstance(key, EventName):
            return key
        if not isinstance(key, str):
            return None
        return _BY_KEY.get(key.strip().lower())


_CANONICAL_ORDER = list(EventName)
_BY_KEY = {name.key: name for name in EventName}


@dataclass(frozen=True)
class Event:
    name: EventName
    timestamp: datetime

    def sort_key(self) -> Tuple[datetime, int]:
        return (self.timestamp, self.name.order)


@dataclass(frozen=True)
class EventSet:
    """
    One day's events. date is the local YYYY-MM-DD key used for freshness checks.
    malformed holds raw strings the codec could not reconstruct ("times.fajr" -> raw).
    """
    date: str
    events: Tuple[Event, ...] = ()
    tomorrow: Optional["EventSet"] = None
    malformed: Dict[str, str] = field(default_factory=dict)

    def event(self, name: EventName) -> Optional[Event]:
        for ev in self.events:
            if ev.name is name:
                return ev
        return None

    def prayers(self) -> Tuple[Event, ...]:
        """Prayer events only (no Sunrise), ascending, canonical name breaks ties."""
        return tuple(sorted((ev for ev in self.events if ev.name.is_prayer), key=Event.sort_key))

    def all_events(self) -> Tuple[Event, ...]:
        return tuple(sorted(self.events, key=Event.sort_key))

    def is_empty(self) -> bool:
        return not self.events and (self.tomorrow is None or not self.tomorrow.events)


RawTimes = Mapping[Union[EventName, str], Optional[datetime]]


def _as_instant(value: datetime) -> datetime:
    # Naive datetimes are host-local wall clock times
    if value.tzinfo is None:
        return value.astimezone()
    return value


def _collect(raw: Optional[RawTimes]) -> Tuple[Event, ...]:
    events = []
    for key, value in (raw or {}).items():
        name = EventName.from_key(key)
        if name is None or value is None:
            continue
        events.append(Event(name, _as_instant(value)))
    return tuple(events)


def build(
    raw: Optional[RawTimes],
    tomorrow_raw: Optional[RawTimes] = None,
    day: Optional[date] = None,
) -> EventSet:
    """Build an EventSet from {name: instant or None} maps for today and tomorrow."""
    events = _collect(raw)
    tomorrow_events = _collect(tomorrow_raw)
    if not events and not tomorrow_events:
        raise IncompleteScheduleError("No usable prayer times for today or tomorrow")

    if day is None:
        if events:
            day = min(ev.timestamp for ev in events).astimezone().date()
        else:
            day = datetime.now().date()

    tomorrow = None
    if tomorrow_raw is not None:
        tomorrow = EventSet(date=(day + timedelta(days=1)).isoformat(), events=tomorrow_events)
    return EventSet(date=day.isoformat(), events=events, tomorrow=tomorrow)
