"""
Foreground context: computes today's and tomorrow's prayer times, persists them,
tells the background context about them and runs the visible countdown loop.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from prayer_badge.core.messaging import MessageChannel
from prayer_badge.core.store import RecordStore

from .codec import local_date_key
from .countdown import Badge, CLEARED_BADGE, DEFAULT_URGENCY_THRESHOLD_MINUTES, describe, format_state
from .errors import IncompleteScheduleError
from .events import EventName, EventSet
from .prayer_base import PrayerCalculator, asr_school_name, method_display_name
from .resolver import current_prayer, resolve
from .service import apply_config_settings, load_settings, store_prayer_times
from .sync import COUNTDOWN_LOOP_NAME, DualTimerSynchronizer, ForegroundLoop
from .task import REFRESH_PRAYER_TIMES, UPDATE_BADGE

Display = Callable[[str, Badge], None]


class ForegroundSession:
    def __init__(
        self,
        store: RecordStore,
        calculator: PrayerCalculator,
        channel: MessageChannel,
        synchronizer: DualTimerSynchronizer,
        config: Optional[Dict[str, Any]] = None,
        display: Optional[Display] = None,
    ):
        self.store = store
        self.calculator = calculator
        self.channel = channel
        self.synchronizer = synchronizer
        self.config = config or {}
        self.display = display or self._log_display
        self.logger = logging.getLogger(self.__class__.__name__)

        countdown = self.config.get("countdown") or {}
        self.period_seconds = int(countdown.get("period_seconds", synchronizer.period_seconds))
        self.urgency_threshold = int(
            countdown.get("urgency_threshold_minutes", DEFAULT_URGENCY_THRESHOLD_MINUTES)
        )
        self.request_timeout = (self.config.get("messaging") or {}).get("timeout_seconds")

        self.event_set: Optional[EventSet] = None
        self.countdown_loop: Optional[ForegroundLoop] = None
        self.last_text = ""
        self._request_token = 0
        self._token_lock = threading.Lock()

    def _log_display(self, text: str, badge: Badge) -> None:
        if text != self.last_text:
            self.logger.info(text or "No upcoming prayer")

    def open(self, now: Optional[datetime] = None) -> Optional[EventSet]:
        """Foreground became visible: listen for refresh requests and compute fresh times."""
        self.channel.register(REFRESH_PRAYER_TIMES, self._on_refresh)
        settings = load_settings(self.store)
        if settings.location is None:
            self.logger.info("No location set; configure location.latitude/longitude")
            return None
        return self.calculate_and_display(now)

    def close(self) -> None:
        self.channel.unregister(REFRESH_PRAYER_TIMES, self._on_refresh)
        self.synchronizer.cancel_foreground_loop(COUNTDOWN_LOOP_NAME)
        self.countdown_loop = None

    def calculate_and_display(self, now: Optional[datetime] = None) -> Optional[EventSet]:
        """Recompute the whole record, overwrite it, notify the background and restart the countdown."""
        with self._token_lock:
            self._request_token += 1
            token = self._request_token

        settings = load_settings(self.store)
        if settings.location is None:
            self.logger.warning("No location selected")
            return None

        now = now or self.synchronizer.clock()
        today = now.astimezone().date()
        try:
            event_set = self.calculator.calculate_event_set(
                settings.location, today, settings.calculation_method, settings.madhab
            )
        except IncompleteScheduleError as e:
            self.logger.error(f"Prayer time calculation failed: {e}")
            self.event_set = None
            self.display("", CLEARED_BADGE)
            return None

        if token != self._request_token:
            self.logger.info("Discarding prayer times from a superseded calculation")
            return None

        self.event_set = event_set
        record = store_prayer_times(self.store, event_set)
        self.logger.info(
            f"Prayer times for {settings.location.display_name()} on {event_set.date}: "
            f"{method_display_name(settings.calculation_method)}, Asr {asr_school_name(settings.madhab)}"
        )

        reply = self.channel.request(UPDATE_BADGE, {"prayerTimes": record}, timeout=self.request_timeout)
        if not reply.ok:
            self.logger.debug(f"Badge update not delivered: {reply.error}")

        self.start_countdown()
        return event_set

    def start_countdown(self) -> ForegroundLoop:
        self.countdown_loop = self.synchronizer.start_foreground_loop(
            self.period_seconds, self.update_countdown, name=COUNTDOWN_LOOP_NAME
        )
        return self.countdown_loop

    def update_countdown(self, now: Optional[datetime] = None) -> str:
        """One countdown tick: resolve the in-memory snapshot and publish the detail text."""
        if self.event_set is None:
            return ""
        now = now or self.synchronizer.clock()
        if local_date_key(now) != self.event_set.date:
            self.logger.info(f"Day changed since {self.event_set.date}, recalculating prayer times")
            if self.calculate_and_display(now) is None:
                return ""
        state = resolve(self.event_set, now)
        text = describe(state)
        self.display(text, format_state(state, self.urgency_threshold, verbose=True))
        self.last_text = text
        return text

    def current_prayer(self, now: Optional[datetime] = None) -> Optional[EventName]:
        if self.event_set is None:
            return None
        return current_prayer(self.event_set, now or self.synchronizer.clock())

    def handle_config_change(self, config_data: Dict[str, Any]) -> None:
        """Settings changed: the stored record is superseded, so recompute it."""
        self.config = config_data
        countdown = config_data.get("countdown") or {}
        self.urgency_threshold = int(countdown.get("urgency_threshold_minutes", self.urgency_threshold))
        apply_config_settings(self.store, config_data)
        self.calculate_and_display()

    def _on_refresh(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {"refreshed": self.calculate_and_display() is not None}
