"""
Host scheduler: named repeating alarms on threading timers, plus an asyncio loop
thread that hosts the cooperative foreground countdown loop.
"""
import asyncio
import logging
import threading
import time
from datetime import datetime, timezone
from threading import Timer
from typing import Any, Callable, Dict, List, Optional

from prayer_badge.prayer.errors import SchedulingConflictError

WakeListener = Callable[[str], None]


class _Alarm:
    def __init__(self, name: str, period: float, first_fire: float):
        self.name = name
        self.period = period
        self.first_fire = first_fire
        self.next_fire = first_fire
        self.fired = 0
        self.timer: Optional[Timer] = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()


class TaskManager:
    def __init__(self, start_loop: bool = True):
        self.alarms: Dict[str, _Alarm] = {}
        self.logger = logging.getLogger("TaskManager")
        self._lock = threading.Lock()
        self._wake_listeners: List[WakeListener] = []
        self.async_loop: Optional[asyncio.AbstractEventLoop] = None
        if start_loop:
            self._setup_async_loop()

    def _setup_async_loop(self) -> None:
        """Setup async event loop in background thread."""
        self.async_loop = asyncio.new_event_loop()

        def run_async_loop():
            asyncio.set_event_loop(self.async_loop)
            self.async_loop.run_forever()

        self.async_thread = threading.Thread(target=run_async_loop, daemon=True)
        self.async_thread.start()

    def add_wake_listener(self, listener: WakeListener) -> None:
        if listener not in self._wake_listeners:
            self._wake_listeners.append(listener)

    def remove_wake_listener(self, listener: WakeListener) -> None:
        if listener in self._wake_listeners:
            self._wake_listeners.remove(listener)

    def schedule_repeating(
        self,
        name: str,
        initial_delay: float,
        period: float,
        first_fire_at: Optional[float] = None,
    ) -> None:
        """Wake listeners with name after initial_delay seconds, then every period seconds.

        first_fire_at (epoch seconds) pins the first firing to an exact instant;
        later firings stay on first_fire_at + n * period.
        """
        if period <= 0:
            raise ValueError(f"Alarm period must be positive, got {period}")
        with self._lock:
            if name in self.alarms:
                raise SchedulingConflictError(name)
            if first_fire_at is None:
                first_fire_at = time.time() + max(0.0, initial_delay)
            alarm = _Alarm(name, period, first_fire_at)
            self.alarms[name] = alarm
            self._arm(alarm)
        self.logger.info(
            f"Alarm {name} scheduled for {datetime.fromtimestamp(alarm.first_fire)}, every {period} seconds"
        )

    def _arm(self, alarm: _Alarm) -> None:
        delay = max(0.0, alarm.next_fire - time.time())
        timer = Timer(delay, self._fire, args=(alarm,))
        timer.daemon = True
        alarm.timer = timer
        timer.start()

    def _fire(self, alarm: _Alarm) -> None:
        if alarm.cancelled:
            return
        for listener in list(self._wake_listeners):
            try:
                listener(alarm.name)
            except Exception as e:
                self.logger.error(f"Error running wake listener for {alarm.name}: {e}", exc_info=True)
        with self._lock:
            if alarm.cancelled or self.alarms.get(alarm.name) is not alarm:
                return
            # Anchor every firing to the first one so the period does not drift
            alarm.fired += 1
            alarm.next_fire = alarm.first_fire + alarm.fired * alarm.period
            now = time.time()
            if alarm.next_fire < now:
                skipped = int((now - alarm.next_fire) // alarm.period) + 1
                alarm.fired += skipped
                alarm.next_fire += skipped * alarm.period
            self._arm(alarm)

    def cancel(self, name: str) -> bool:
        """Cancel the alarm registered under name. Returns False if there was none."""
        with self._lock:
            alarm = self.alarms.pop(name, None)
        if alarm is None:
            return False
        alarm.cancel()
        self.logger.info(f"Cancelled alarm {name}")
        return True

    def active_alarms(self) -> List[Dict[str, Any]]:
        """Return active alarm names, next run time and period (for API)."""
        with self._lock:
            alarms = list(self.alarms.values())
        return [
            {
                "name": a.name,
                "next_run_at": datetime.fromtimestamp(a.next_fire, tz=timezone.utc),
                "period": a.period,
            }
            for a in alarms
        ]

    def stop(self) -> None:
        """Stop all alarms and the async loop."""
        with self._lock:
            alarms = list(self.alarms.values())
            self.alarms.clear()
        for alarm in alarms:
            alarm.cancel()
        if self.async_loop is not None:
            self.async_loop.call_soon_threadsafe(self.async_loop.stop)
