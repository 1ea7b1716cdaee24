from types import SimpleNamespace

import pytest

from prayer_badge.core.messaging import MessageChannel
from prayer_badge.prayer.badge import MemoryBadgeSurface
from prayer_badge.prayer.codec import encode
from prayer_badge.prayer.prayer_base import Location, Settings
from prayer_badge.prayer.service import PRAYER_TIMES_KEY, save_settings, store_prayer_times
from prayer_badge.prayer.sync import BADGE_ALARM_NAME, DualTimerSynchronizer
from prayer_badge.prayer.task import (
    GET_TIMEZONE,
    REFRESH_PRAYER_TIMES,
    UPDATE_BADGE,
    BadgeUpdateTask,
)

from helpers import DAY, FakeScheduler, local, make_event_set

CONFIG = {"countdown": {"urgency_threshold_minutes": 10}, "messaging": {"timeout_seconds": 1}}


@pytest.fixture
def clock():
    return SimpleNamespace(now=local(2025, 3, 1, 12, 10))


@pytest.fixture
def background(store, clock):
    scheduler = FakeScheduler()
    synchronizer = DualTimerSynchronizer(scheduler, clock=lambda: clock.now)
    channel = MessageChannel(timeout_seconds=1)
    task = BadgeUpdateTask(store, synchronizer, channel, MemoryBadgeSurface(), CONFIG)
    save_settings(store, Settings(location=Location(21.42, 39.83)))
    yield task
    if task.started:
        task.stop()
    channel.close()


def test_start_aligns_alarm_and_shows_badge(background, store):
    store_prayer_times(store, make_event_set())
    background.start()

    assert BADGE_ALARM_NAME in background.scheduler.alarms
    snapshot = background.surface.snapshot()
    assert snapshot["label"] == "5"
    assert snapshot["urgent"]
    assert snapshot["background_color"] == "#dc3545"


def test_missing_record_clears_badge(background):
    background.start()
    assert background.surface.badge.cleared


def test_wake_updates_countdown(background, store, clock):
    store_prayer_times(store, make_event_set())
    background.start()
    clock.now = local(2025, 3, 1, 10, 0)
    background.scheduler.fire(BADGE_ALARM_NAME)
    assert background.surface.badge.label == "2:15"
    assert not background.surface.badge.urgent


def test_wake_for_other_alarm_is_ignored(background, store):
    store_prayer_times(store, make_event_set())
    background.start()
    background.surface.clear()
    background.scheduler.fire("something-else")
    assert background.surface.badge.cleared


def test_stale_record_without_foreground_clears_badge(background, store, clock):
    store_prayer_times(store, make_event_set())
    background.start()
    clock.now = local(2025, 3, 2, 8, 0)
    background.handle_wake(BADGE_ALARM_NAME)
    assert background.surface.badge.cleared


def test_stale_record_asks_foreground_to_refresh(background, store, clock):
    store_prayer_times(store, make_event_set())
    background.start()
    clock.now = local(2025, 3, 2, 11, 0)

    def refresh(payload):
        store_prayer_times(store, make_event_set(day=DAY.replace(day=2)))
        return {"refreshed": True}

    background.channel.register(REFRESH_PRAYER_TIMES, refresh)
    background.handle_wake(BADGE_ALARM_NAME)
    assert background.surface.badge.label == "1:15"


def test_wake_without_location_does_nothing(background, store):
    store.remove(["location"])
    store_prayer_times(store, make_event_set())
    background.start()
    background.surface.clear()
    background.handle_wake(BADGE_ALARM_NAME)
    assert background.surface.badge.cleared


def test_malformed_record_clears_badge(background, store):
    background.start()
    store.set({PRAYER_TIMES_KEY: {"times": {"fajr": "?"}}})
    assert background.surface.badge.cleared


def test_store_change_refreshes_badge(background, store):
    background.start()
    assert background.surface.badge.cleared
    store_prayer_times(store, make_event_set())
    assert background.surface.badge.label == "5"


def test_update_badge_message(background):
    background.start()
    reply = background.channel.request(UPDATE_BADGE, {"prayerTimes": encode(make_event_set())})
    assert reply.ok
    assert reply.value == {"success": True}
    assert background.surface.badge.label == "5"


def test_get_timezone_message(background):
    background.start()
    reply = background.channel.request(GET_TIMEZONE)
    assert reply.ok
    assert reply.value["timezone"]


def test_stop_unregisters_everything(background):
    background.start()
    background.stop()
    assert not background.channel.has_receiver(UPDATE_BADGE)
    assert background.scheduler.alarms == {}
    assert background.scheduler.listeners == []
