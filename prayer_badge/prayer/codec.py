"""
Plain-record codec for EventSet.

The record store has no schema, so instants travel as ISO-8601 strings:

    {"date": "2025-03-01",
     "times": {"fajr": "2025-03-01T05:12:00+00:00", ...},
     "tomorrowTimes": {...} or None,
     "kinds": {"times": {"fajr": "instant", ...}, "tomorrowTimes": {...}}}

"kinds" tags every value explicitly. Records written without it (older
writers) fall back to sniffing the string for a date/time "T" separator.
A value that cannot be turned back into an instant is kept raw in
EventSet.malformed instead of failing the whole decode.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import MalformedRecordError, StaleRecordError
from .events import Event, EventName, EventSet

logger = logging.getLogger(__name__)

TODAY_SECTION = "times"
TOMORROW_SECTION = "tomorrowTimes"
KIND_INSTANT = "instant"
KIND_PLAIN = "plain"


def local_date_key(now: Optional[datetime] = None) -> str:
    """Host-local calendar date as YYYY-MM-DD (not the UTC date)."""
    if now is None:
        now = datetime.now()
    elif now.tzinfo is not None:
        now = now.astimezone()
    return now.strftime("%Y-%m-%d")


def _encode_section(event_set: Optional[EventSet]) -> Tuple[Optional[Dict[str, str]], Dict[str, str]]:
    if event_set is None:
        return None, {}
    times = {}
    kinds = {}
    for ev in event_set.events:
        times[ev.name.key] = ev.timestamp.isoformat()
        kinds[ev.name.key] = KIND_INSTANT
    return times, kinds


def encode(event_set: EventSet) -> Dict[str, Any]:
    """EventSet -> JSON-serializable dict."""
    times, kinds = _encode_section(event_set)
    tomorrow_times, tomorrow_kinds = _encode_section(event_set.tomorrow)
    record = {
        "date": event_set.date,
        TODAY_SECTION: times,
        TOMORROW_SECTION: tomorrow_times,
        "kinds": {TODAY_SECTION: kinds},
    }
    if tomorrow_times is not None:
        record["kinds"][TOMORROW_SECTION] = tomorrow_kinds
    return record


def _looks_like_instant(value: Any) -> bool:
    return isinstance(value, str) and "T" in value


def _parse_instant(value: str) -> datetime:
    # fromisoformat accepts the trailing "Z" written by JavaScript toISOString()
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def _decode_section(
    section: str,
    values: Mapping[str, Any],
    kinds: Mapping[str, str],
    malformed: Dict[str, str],
) -> Tuple[Event, ...]:
    events = []
    for key, value in values.items():
        name = EventName.from_key(key)
        if name is None:
            logger.debug(f"Ignoring non-event field {section}.{key}")
            continue
        if value is None:
            continue
        if isinstance(value, datetime):
            events.append(Event(name, value))
            continue
        kind = kinds.get(key)
        if kind is None:
            kind = KIND_INSTANT if _looks_like_instant(value) else KIND_PLAIN
        field = f"{section}.{key}"
        try:
            if kind != KIND_INSTANT:
                raise MalformedRecordError(field, value)
            try:
                events.append(Event(name, _parse_instant(value)))
            except (TypeError, ValueError) as e:
                raise MalformedRecordError(field, value) from e
        except MalformedRecordError as e:
            logger.warning(f"{e}; keeping raw value")
            malformed[field] = str(value)
    return tuple(events)


def _section_mapping(field: str, value: Any, malformed: Dict[str, str]) -> Mapping[str, Any]:
    """value when it is a mapping; anything else is recorded raw under field and read as empty."""
    if value is None:
        return {}
    if isinstance(value, Mapping):
        return value
    logger.warning(f"{MalformedRecordError(field, value)}; section is not a mapping, keeping raw value")
    malformed[field] = str(value)
    return {}


def decode(record: Mapping[str, Any]) -> EventSet:
    """Plain record -> EventSet. Unreadable event fields end up in EventSet.malformed."""
    if not isinstance(record, Mapping) or not record.get("date"):
        raise MalformedRecordError("date", record)
    day = str(record["date"])

    malformed: Dict[str, str] = {}
    kinds = _section_mapping("kinds", record.get("kinds"), malformed)
    today_kinds = _section_mapping(f"kinds.{TODAY_SECTION}", kinds.get(TODAY_SECTION), malformed)
    today_values = _section_mapping(TODAY_SECTION, record.get(TODAY_SECTION), malformed)
    events = _decode_section(TODAY_SECTION, today_values, today_kinds, malformed)

    tomorrow = None
    tomorrow_values = record.get(TOMORROW_SECTION)
    if tomorrow_values is not None and not isinstance(tomorrow_values, Mapping):
        _section_mapping(TOMORROW_SECTION, tomorrow_values, malformed)
    elif tomorrow_values is not None:
        tomorrow_malformed: Dict[str, str] = {}
        tomorrow_kinds = _section_mapping(
            f"kinds.{TOMORROW_SECTION}", kinds.get(TOMORROW_SECTION), tomorrow_malformed
        )
        tomorrow_events = _decode_section(TOMORROW_SECTION, tomorrow_values, tomorrow_kinds, tomorrow_malformed)
        tomorrow = EventSet(
            date=_next_day(day),
            events=tomorrow_events,
            malformed=tomorrow_malformed,
        )
        malformed.update(tomorrow_malformed)
    return EventSet(date=day, events=events, tomorrow=tomorrow, malformed=malformed)


def _next_day(day: str) -> str:
    try:
        return (date.fromisoformat(day) + timedelta(days=1)).isoformat()
    except ValueError:
        logger.warning(f"Record date is not YYYY-MM-DD: {day!r}")
        return day


def is_fresh(record: Optional[Mapping[str, Any]], today: Optional[str] = None) -> bool:
    if not record:
        return False
    return record.get("date") == (today or local_date_key())


def ensure_fresh(record: Optional[Mapping[str, Any]], today: Optional[str] = None) -> None:
    """Raise StaleRecordError unless the record was computed for today."""
    today = today or local_date_key()
    if not is_fresh(record, today):
        raise StaleRecordError(record.get("date") if record else None, today)
