from datetime import date, datetime, timedelta

from prayer_badge.prayer.events import EventName, build
from prayer_badge.prayer.prayer_base import PrayerCalculator


def local(year, month, day, hour=0, minute=0, second=0):
    """Host-local aware instant."""
    return datetime(year, month, day, hour, minute, second).astimezone()


DAY = date(2025, 3, 1)

SCHEDULE = {
    EventName.FAJR: (5, 0),
    EventName.SUNRISE: (6, 30),
    EventName.DHUHR: (12, 15),
    EventName.ASR: (15, 40),
    EventName.MAGHRIB: (18, 20),
    EventName.ISHA: (19, 45),
}


def day_times(day=DAY, schedule=None):
    schedule = schedule or SCHEDULE
    return {
        name: local(day.year, day.month, day.day, hour, minute)
        for name, (hour, minute) in schedule.items()
    }


def make_event_set(day=DAY, tomorrow=True):
    tomorrow_raw = day_times(day + timedelta(days=1)) if tomorrow else None
    return build(day_times(day), tomorrow_raw, day=day)


class FakeScheduler:
    """Records alarms instead of arming timers."""

    def __init__(self):
        self.alarms = {}
        self.first_fire = {}
        self.listeners = []
        self.async_loop = None

    def add_wake_listener(self, listener):
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_wake_listener(self, listener):
        if listener in self.listeners:
            self.listeners.remove(listener)

    def schedule_repeating(self, name, initial_delay, period, first_fire_at=None):
        self.alarms[name] = (initial_delay, period)
        self.first_fire[name] = first_fire_at

    def cancel(self, name):
        return self.alarms.pop(name, None) is not None

    def fire(self, name):
        for listener in list(self.listeners):
            listener(name)


class FakeCalculator(PrayerCalculator):
    def __init__(self, schedule=None):
        super().__init__()
        self.schedule = schedule
        self.calls = []

    def calculate(self, location, day, method, madhab):
        self.calls.append((day, method, madhab))
        if self.schedule == {}:
            return {}
        return day_times(day, self.schedule)
