"""
Keeps the foreground countdown loop and the background badge alarm on the same
wall-clock boundaries (every 15 seconds by default: :00, :15, :30, :45), so both
surfaces change their countdown together instead of drifting up to one period apart.
"""
import asyncio
import inspect
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from prayer_badge.core.models import upsert_task_schedule

from .errors import SchedulingConflictError

DEFAULT_PERIOD_SECONDS = 15
BADGE_ALARM_NAME = "badge-update"
COUNTDOWN_LOOP_NAME = "countdown"
_EARLY_WAKE_SECONDS = 0.05

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[Any]]
TickCallback = Callable[[], Any]


def _now() -> datetime:
    return datetime.now().astimezone()


def next_boundary_epoch(now: datetime, period_seconds: int = DEFAULT_PERIOD_SECONDS) -> int:
    """Epoch second of the first period boundary strictly after now."""
    return (math.floor(now.timestamp() / period_seconds) + 1) * period_seconds


def compute_aligned_delay(now: datetime, period_seconds: int = DEFAULT_PERIOD_SECONDS) -> float:
    """Seconds until the next period boundary shared by both contexts, in (0, period]."""
    remainder = now.timestamp() % period_seconds
    return period_seconds - remainder if remainder else float(period_seconds)


@dataclass(frozen=True)
class TimerPhase:
    period_seconds: int
    anchor_epoch_seconds: int

    @classmethod
    def aligned_to(cls, now: datetime, period_seconds: int = DEFAULT_PERIOD_SECONDS) -> "TimerPhase":
        return cls(period_seconds=period_seconds, anchor_epoch_seconds=next_boundary_epoch(now, period_seconds))

    def next_boundary(self, now: datetime) -> int:
        """Epoch second of the first firing strictly after now."""
        ts = now.timestamp()
        if ts < self.anchor_epoch_seconds:
            return self.anchor_epoch_seconds
        periods = int((ts - self.anchor_epoch_seconds) // self.period_seconds) + 1
        return self.anchor_epoch_seconds + periods * self.period_seconds


class ForegroundLoop:
    """
    Cooperative countdown loop. Ticks once immediately, then on every aligned
    boundary. on_tick (plain function or coroutine function) finishes before the
    next sleep starts, so a slow tick delays the next one but never overlaps it.
    """

    def __init__(
        self,
        name: str,
        period_seconds: int,
        on_tick: TickCallback,
        clock: Optional[Clock] = None,
        sleep: Optional[Sleeper] = None,
    ):
        self.name = name
        self.period_seconds = period_seconds
        self.on_tick = on_tick
        self.clock = clock or _now
        self._sleep = sleep or asyncio.sleep
        self.logger = logging.getLogger(self.__class__.__name__)
        self.ticks = 0
        self._cancelled = False
        self._future: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def _tick(self) -> None:
        try:
            result = self.on_tick()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            self.logger.error(f"Error in {self.name} tick: {e}", exc_info=True)
        self.ticks += 1

    async def run(self) -> None:
        on_boundary = False
        while not self._cancelled:
            await self._tick()
            if self._cancelled:
                break
            delay = compute_aligned_delay(self.clock(), self.period_seconds)
            if on_boundary and delay < _EARLY_WAKE_SECONDS:
                # Woke a hair before the boundary we already ticked for
                delay += self.period_seconds
            await self._sleep(delay)
            on_boundary = True

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> "ForegroundLoop":
        """Run on loop; from another thread the coroutine is handed over thread-safely."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if loop is None or loop is running:
            if running is None:
                raise RuntimeError("No event loop to run the foreground loop on")
            self._loop = running
            self._future = running.create_task(self.run())
        else:
            self._loop = loop
            self._future = asyncio.run_coroutine_threadsafe(self.run(), loop)
        self.logger.info(f"Foreground loop {self.name} started, period {self.period_seconds}s")
        return self

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        future = self._future
        if future is not None and not future.done():
            if isinstance(future, asyncio.Task):
                # Tasks may only be touched from their own loop
                if not self._loop.is_closed():
                    self._loop.call_soon_threadsafe(future.cancel)
            else:
                future.cancel()
        self.logger.info(f"Foreground loop {self.name} cancelled")


class DualTimerSynchronizer:
    """Owns the foreground loops and the background alarm, keeping them phase-aligned."""

    def __init__(
        self,
        scheduler: Any,
        period_seconds: int = DEFAULT_PERIOD_SECONDS,
        alarm_name: str = BADGE_ALARM_NAME,
        clock: Optional[Clock] = None,
        persist_phase: bool = True,
    ):
        self.scheduler = scheduler
        self.period_seconds = period_seconds
        self.alarm_name = alarm_name
        self.clock = clock or _now
        self.persist_phase = persist_phase
        self.logger = logging.getLogger(self.__class__.__name__)
        self.loops: Dict[str, ForegroundLoop] = {}
        self.phase: Optional[TimerPhase] = None

    @staticmethod
    def compute_aligned_delay(now: datetime, period_seconds: int = DEFAULT_PERIOD_SECONDS) -> float:
        return compute_aligned_delay(now, period_seconds)

    def start_foreground_loop(
        self,
        period_seconds: Optional[int],
        on_tick: TickCallback,
        name: str = COUNTDOWN_LOOP_NAME,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        sleep: Optional[Sleeper] = None,
    ) -> ForegroundLoop:
        """Start a repeating foreground tick; an older loop under the same name is cancelled first."""
        self.cancel_foreground_loop(name)
        if loop is None:
            loop = getattr(self.scheduler, "async_loop", None)
        handle = ForegroundLoop(
            name,
            period_seconds or self.period_seconds,
            on_tick,
            clock=self.clock,
            sleep=sleep,
        )
        self.loops[name] = handle
        return handle.start(loop)

    def cancel_foreground_loop(self, name: str = COUNTDOWN_LOOP_NAME) -> bool:
        handle = self.loops.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def reschedule_background_alarm(
        self,
        now: Optional[datetime] = None,
        period_seconds: Optional[int] = None,
    ) -> TimerPhase:
        """Cancel the badge alarm and re-register it on the next shared boundary."""
        now = now or self.clock()
        period = period_seconds or self.period_seconds
        phase = TimerPhase.aligned_to(now, period)
        delay = phase.anchor_epoch_seconds - now.timestamp()

        self.scheduler.cancel(self.alarm_name)
        try:
            self.scheduler.schedule_repeating(
                self.alarm_name, delay, period, first_fire_at=phase.anchor_epoch_seconds
            )
        except SchedulingConflictError:
            # Someone registered in between; replace theirs with ours
            self.logger.info(f"Alarm {self.alarm_name} re-registered concurrently, replacing it")
            self.scheduler.cancel(self.alarm_name)
            self.scheduler.schedule_repeating(
                self.alarm_name, delay, period, first_fire_at=phase.anchor_epoch_seconds
            )

        self.phase = phase
        self.logger.debug(
            f"Alarm {self.alarm_name} aligned: first firing at {phase.anchor_epoch_seconds} "
            f"(in {delay:.3f}s), every {period}s"
        )
        if self.persist_phase:
            try:
                upsert_task_schedule(self.alarm_name, period, phase.anchor_epoch_seconds)
            except Exception as e:
                self.logger.warning(f"Could not persist phase for {self.alarm_name}: {e}")
        return phase

    def cancel_background_alarm(self) -> bool:
        return self.scheduler.cancel(self.alarm_name)

    def stop(self) -> None:
        for name in list(self.loops):
            self.cancel_foreground_loop(name)
        self.cancel_background_alarm()
