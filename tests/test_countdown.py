from datetime import timedelta

from prayer_badge.prayer.countdown import (
    CLEARED_BADGE,
    describe,
    format_countdown,
    format_state,
    split_minutes,
)
from prayer_badge.prayer.resolver import Unresolved, resolve

from helpers import local, make_event_set


def test_terse_labels():
    assert format_countdown(timedelta(hours=1, minutes=5)).label == "1:05"
    assert format_countdown(timedelta(minutes=7, seconds=59)).label == "7"
    assert format_countdown(timedelta(seconds=59)).label == "0"
    assert format_countdown(timedelta(hours=10, minutes=30)).label == "10:30"


def test_verbose_labels():
    assert format_countdown(timedelta(hours=1, minutes=5), verbose=True).label == "1h 5m"
    assert format_countdown(timedelta(minutes=7), verbose=True).label == "7m"
    assert format_countdown(timedelta(seconds=30), verbose=True).label == "0m"


def test_urgency_threshold_is_strict():
    assert format_countdown(timedelta(minutes=9, seconds=59)).urgent
    assert not format_countdown(timedelta(minutes=10)).urgent
    assert format_countdown(timedelta(minutes=10), urgency_threshold_minutes=11).urgent


def test_minutes_are_floored():
    assert split_minutes(timedelta(minutes=65, seconds=59)) == (65, 1, 5)
    assert split_minutes(timedelta(seconds=-5)) == (0, 0, 0)


def test_unresolved_clears_badge():
    assert format_state(Unresolved(reason="x")) == CLEARED_BADGE
    assert CLEARED_BADGE.cleared
    assert describe(Unresolved()) == ""


def test_describe_state():
    state = resolve(make_event_set(), local(2025, 3, 1, 11, 10))
    assert describe(state) == "Time until Dhuhr: 1h 5m"
    assert format_state(state).label == "1:05"
