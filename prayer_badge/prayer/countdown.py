"""
Countdown formatting for the badge (terse) and the detail view (verbose).
Minutes are always floored so the countdown never shows "arrived" early.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Tuple

from .resolver import Resolution

DEFAULT_URGENCY_THRESHOLD_MINUTES = 10


@dataclass(frozen=True)
class Badge:
    label: str
    urgent: bool = False

    @property
    def cleared(self) -> bool:
        return self.label == ""


CLEARED_BADGE = Badge(label="", urgent=False)


def split_minutes(delta: timedelta) -> Tuple[int, int, int]:
    """Return (total_minutes, hours, minutes) for a non-negative delta."""
    total_minutes = max(0, int(delta.total_seconds() // 60))
    return total_minutes, total_minutes // 60, total_minutes % 60


def format_countdown(
    delta: timedelta,
    urgency_threshold_minutes: int = DEFAULT_URGENCY_THRESHOLD_MINUTES,
    verbose: bool = False,
) -> Badge:
    total_minutes, hours, minutes = split_minutes(delta)
    if verbose:
        label = f"{hours}h {minutes}m" if hours > 0 else f"{minutes}m"
    elif hours > 0:
        label = f"{hours}:{minutes:02d}"
    elif minutes > 0:
        label = f"{minutes}"
    else:
        label = "0"
    return Badge(label=label, urgent=total_minutes < urgency_threshold_minutes)


def format_state(
    state: Resolution,
    urgency_threshold_minutes: int = DEFAULT_URGENCY_THRESHOLD_MINUTES,
    verbose: bool = False,
) -> Badge:
    """Badge for a resolver result; unresolved states clear the badge."""
    if not state.resolved:
        return CLEARED_BADGE
    return format_countdown(state.delta, urgency_threshold_minutes, verbose=verbose)


def describe(state: Resolution) -> str:
    """Detail line, e.g. 'Time until Dhuhr: 1h 5m'."""
    if not state.resolved:
        return ""
    return f"Time until {state.next.name.value}: {format_countdown(state.delta, verbose=True).label}"
