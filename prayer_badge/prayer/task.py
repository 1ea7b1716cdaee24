"""
Background context: woken by the badge alarm, rebuilds state from the stored
record on every wake (no in-memory cache is trusted) and updates the badge.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Set

from prayer_badge.core.messaging import MessageChannel
from prayer_badge.core.store import RecordStore

from .badge import BadgeSurface
from .codec import decode, is_fresh, local_date_key
from .countdown import Badge, CLEARED_BADGE, DEFAULT_URGENCY_THRESHOLD_MINUTES, format_state
from .errors import IncompleteScheduleError, MalformedRecordError, StaleRecordError
from .events import EventSet
from .prayer_base import local_timezone_name
from .resolver import resolve
from .service import (
    PRAYER_TIMES_KEY,
    get_prayer_times_record,
    load_prayer_times,
    load_settings,
)
from .sync import DualTimerSynchronizer

UPDATE_BADGE = "UPDATE_BADGE"
GET_TIMEZONE = "GET_TIMEZONE"
REFRESH_PRAYER_TIMES = "REFRESH_PRAYER_TIMES"


class BadgeUpdateTask:
    """Keeps the badge countdown current from the background context."""

    def __init__(
        self,
        store: RecordStore,
        synchronizer: DualTimerSynchronizer,
        channel: MessageChannel,
        surface: BadgeSurface,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.store = store
        self.synchronizer = synchronizer
        self.channel = channel
        self.surface = surface
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)
        countdown = self.config.get("countdown") or {}
        self.urgency_threshold = int(
            countdown.get("urgency_threshold_minutes", DEFAULT_URGENCY_THRESHOLD_MINUTES)
        )
        messaging = self.config.get("messaging") or {}
        self.request_timeout = messaging.get("timeout_seconds")
        self.started = False

    @property
    def scheduler(self):
        return self.synchronizer.scheduler

    def start(self, now: Optional[datetime] = None) -> None:
        """Process start: register listeners and handlers, align the alarm, update the badge now."""
        self.channel.register(UPDATE_BADGE, self._on_update_badge)
        self.channel.register(GET_TIMEZONE, self._on_get_timezone)
        self.scheduler.add_wake_listener(self.handle_wake)
        self.store.add_listener(self.handle_store_change)
        self.synchronizer.reschedule_background_alarm(now)
        self.started = True
        self.check_and_update_badge(now)

    def stop(self) -> None:
        self.channel.unregister(UPDATE_BADGE, self._on_update_badge)
        self.channel.unregister(GET_TIMEZONE, self._on_get_timezone)
        self.scheduler.remove_wake_listener(self.handle_wake)
        self.store.remove_listener(self.handle_store_change)
        self.synchronizer.cancel_background_alarm()
        self.started = False

    def handle_wake(self, name: str, now: Optional[datetime] = None) -> None:
        if name != self.synchronizer.alarm_name:
            return
        now = now or self.synchronizer.clock()
        try:
            settings = load_settings(self.store)
            if settings.location is None:
                self.logger.debug("No location configured, skipping badge update")
                return
            today = local_date_key(now)
            if not is_fresh(get_prayer_times_record(self.store), today):
                self.request_refresh()
        except Exception as e:
            self.logger.error(f"Alarm update failed: {e}", exc_info=True)
        self.check_and_update_badge(now)

    def request_refresh(self) -> bool:
        """Ask the foreground context, if alive, to recompute today's prayer times."""
        if not self.channel.has_receiver(REFRESH_PRAYER_TIMES):
            self.logger.debug("Stored prayer times are stale and no foreground is open")
            return False
        reply = self.channel.request(REFRESH_PRAYER_TIMES, timeout=self.request_timeout)
        if not reply.ok:
            self.logger.info(f"Refresh request not served: {reply.error}")
        return reply.ok

    def handle_store_change(self, changed: Set[str]) -> None:
        if PRAYER_TIMES_KEY in changed:
            self.check_and_update_badge()

    def check_and_update_badge(self, now: Optional[datetime] = None) -> Badge:
        """Load today's record and refresh the badge. Never raises; problems clear the badge."""
        now = now or self.synchronizer.clock()
        try:
            event_set = load_prayer_times(self.store, local_date_key(now))
        except StaleRecordError as e:
            self.logger.info(f"{e}; clearing badge")
            event_set = None
        except (MalformedRecordError, IncompleteScheduleError) as e:
            self.logger.warning(f"Unusable prayer times record: {e}")
            event_set = None
        except Exception as e:
            self.logger.error(f"Error checking stored prayer times: {e}", exc_info=True)
            event_set = None

        if event_set is None:
            self.surface.clear()
            return CLEARED_BADGE
        return self.update_badge(event_set, now)

    def update_badge(self, event_set: EventSet, now: Optional[datetime] = None) -> Badge:
        now = now or self.synchronizer.clock()
        badge = format_state(resolve(event_set, now), self.urgency_threshold)
        self.surface.show(badge)
        return badge

    def _on_update_badge(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Foreground computed fresh times: show them and re-align the alarm to its phase."""
        record = payload.get("prayerTimes")
        if record:
            self.update_badge(decode(record))
            self.synchronizer.reschedule_background_alarm()
        return {"success": True}

    def _on_get_timezone(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"timezone": local_timezone_name()}
