"""
Resolver: which prayer is running now and which one comes next.

resolve() is pure. Prayer events are re-sorted on every call so an out-of-order
upstream schedule resolves the same as a sorted one. When today's prayers are
exhausted the next event comes from the tomorrow lookahead (its first prayer,
normally Fajr). "Not resolvable yet" is returned as Unresolved, never raised.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence, Union

from .events import Event, EventName, EventSet


@dataclass(frozen=True)
class NextEvent:
    name: EventName
    timestamp: datetime
    is_tomorrow: bool = False


@dataclass(frozen=True)
class ResolvedState:
    current: Optional[EventName]
    next: NextEvent
    delta: timedelta

    resolved = True


@dataclass(frozen=True)
class Unresolved:
    current: Optional[EventName] = None
    reason: str = ""

    resolved = False


Resolution = Union[ResolvedState, Unresolved]


def _running(prayers: Sequence[Event], now: datetime) -> Optional[Event]:
    """Latest prayer that has started; on equal timestamps the earlier name wins."""
    running = None
    for ev in prayers:
        if ev.timestamp > now:
            break
        if running is None or ev.timestamp > running.timestamp:
            running = ev
    return running


def _upcoming(prayers: Sequence[Event], now: datetime) -> Optional[Event]:
    for ev in prayers:
        if ev.timestamp > now:
            return ev
    return None


def resolve(event_set: EventSet, now: datetime) -> Resolution:
    """Compute current/next prayer and the remaining time for now."""
    if now.tzinfo is None:
        now = now.astimezone()
    prayers = event_set.prayers()
    running = _running(prayers, now)
    current = running.name if running else None

    upcoming = _upcoming(prayers, now)
    if upcoming is not None:
        nxt = NextEvent(upcoming.name, upcoming.timestamp)
    else:
        tomorrow_prayers = event_set.tomorrow.prayers() if event_set.tomorrow else ()
        if not tomorrow_prayers:
            reason = "no prayers left today and no lookahead for tomorrow"
            if not prayers:
                reason = "no prayer events"
            return Unresolved(current=current, reason=reason)
        first = tomorrow_prayers[0]
        nxt = NextEvent(first.name, first.timestamp, is_tomorrow=True)

    # now may pass next.timestamp between computation and display
    delta = max(nxt.timestamp - now, timedelta(0))
    return ResolvedState(current=current, next=nxt, delta=delta)


def current_prayer(event_set: EventSet, now: datetime) -> Optional[EventName]:
    """The prayer period now falls in, or None before the first prayer."""
    if now.tzinfo is None:
        now = now.astimezone()
    running = _running(event_set.prayers(), now)
    return running.name if running else None
