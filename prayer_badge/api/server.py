"""
Local HTTP view of the badge and of both timers, served by uvicorn on a
daemon thread when api.enabled is set. Interactive docs live at /docs.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from pydantic import BaseModel

from prayer_badge.core.models import get_all_task_schedules
from prayer_badge.prayer.api import get_router
from prayer_badge.prayer.sync import TimerPhase

logger = logging.getLogger(__name__)


class ScheduleEntry(BaseModel):
    name: str
    period_seconds: int
    anchor_epoch_seconds: int
    next_run_at: Optional[datetime] = None


class AlarmEntry(BaseModel):
    name: str
    period: float
    next_run_at: datetime


class TimersResponse(BaseModel):
    schedules: List[ScheduleEntry]
    active_alarms: List[AlarmEntry]
    foreground_loops: List[str]


def _schedule_entry(row: Dict[str, Any], now: datetime) -> ScheduleEntry:
    # The stored next_run_at is only the first anchor; report the boundary still ahead of now
    phase = TimerPhase(period_seconds=row["period_seconds"], anchor_epoch_seconds=row["anchor_epoch_seconds"])
    next_run_at = datetime.fromtimestamp(phase.next_boundary(now), tz=timezone.utc)
    return ScheduleEntry(**{**row, "next_run_at": next_run_at})


def create_app(prayer_app: Any) -> FastAPI:
    app = FastAPI(title="Prayer Badge API", description="Badge, countdown state and timer phase")

    @app.get("/api/timers", response_model=TimersResponse)
    def list_timers() -> TimersResponse:
        """Persisted alarm phase, armed alarms and running foreground loops."""
        now = prayer_app.synchronizer.clock()
        schedules = [_schedule_entry(row, now) for row in get_all_task_schedules()]
        alarms = [AlarmEntry(**alarm) for alarm in prayer_app.task_manager.active_alarms()]
        return TimersResponse(
            schedules=schedules,
            active_alarms=alarms,
            foreground_loops=sorted(prayer_app.synchronizer.loops),
        )

    app.include_router(get_router(prayer_app), prefix="/api/prayer")
    return app


class ApiServer:
    """uvicorn on a daemon thread; stop() asks it to exit."""

    def __init__(self, prayer_app: Any, host: str = "127.0.0.1", port: int = 8765):
        self.host = host
        self.port = port
        self.app = create_app(prayer_app)
        self.server = None
        self.thread: Optional[threading.Thread] = None

    def _serve(self) -> None:
        try:
            self.server.run()
        except Exception as e:
            logger.exception(f"API server stopped with an error: {e}")

    def start(self) -> "ApiServer":
        import uvicorn

        self.server = uvicorn.Server(uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning"))
        self.thread = threading.Thread(target=self._serve, name="api-server", daemon=True)
        self.thread.start()
        logger.info(f"API listening on http://{self.host}:{self.port} (docs at /docs)")
        return self

    def stop(self) -> None:
        if self.server is not None:
            self.server.should_exit = True


def run_api_server(prayer_app: Any) -> Optional[ApiServer]:
    """Start the API when api.enabled is true; returns the running server or None."""
    api_config = prayer_app.config.data.get("api") or {}
    if not api_config.get("enabled", False):
        logger.info("API disabled (api.enabled is false)")
        return None
    return ApiServer(
        prayer_app,
        host=api_config.get("host", "127.0.0.1"),
        port=int(api_config.get("port", 8765)),
    ).start()
