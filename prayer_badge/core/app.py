import logging
import os
import sys
import threading
from typing import Any, Dict, Optional

from .config import Config
from .db import init_db
from .messaging import MessageChannel
from .store import RecordStore
from .task_manager import TaskManager
from prayer_badge.api.server import run_api_server
from prayer_badge.prayer.badge import MemoryBadgeSurface
from prayer_badge.prayer.countdown import DEFAULT_URGENCY_THRESHOLD_MINUTES
from prayer_badge.prayer.foreground import ForegroundSession
from prayer_badge.prayer.prayer_base import AdhanpyCalculator, PrayerCalculator
from prayer_badge.prayer.service import apply_config_settings, install_defaults
from prayer_badge.prayer.sync import DEFAULT_PERIOD_SECONDS, DualTimerSynchronizer
from prayer_badge.prayer.task import BadgeUpdateTask

MODES = ("run", "foreground", "background")


class PrayerBadgeApp:
    def __init__(
        self,
        config_path: Optional[str] = None,
        watch_config: bool = True,
        calculator: Optional[PrayerCalculator] = None,
        db_url: Optional[str] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)

        self.config = Config(config_path=config_path, watch=watch_config)
        self.config.register_change_callback(self.handle_config_change)
        self._setup_logging()

        # Initialize database before anything reads the store
        init_db(self.config.data, db_url=db_url)
        self.store = RecordStore()
        install_defaults(self.store)
        apply_config_settings(self.store, self.config.data)

        countdown = self.config.data.get("countdown") or {}
        messaging = self.config.data.get("messaging") or {}
        self.task_manager = TaskManager()
        self.channel = MessageChannel(timeout_seconds=float(messaging.get("timeout_seconds", 10)))
        self.synchronizer = DualTimerSynchronizer(
            self.task_manager,
            period_seconds=int(countdown.get("period_seconds", DEFAULT_PERIOD_SECONDS)),
        )
        self.surface = MemoryBadgeSurface(self.config.data.get("badge"))

        self.background = BadgeUpdateTask(
            self.store, self.synchronizer, self.channel, self.surface, self.config.data
        )
        self.calculator = calculator or AdhanpyCalculator(self.config.data.get("calculation"))
        self.foreground = ForegroundSession(
            self.store, self.calculator, self.channel, self.synchronizer, self.config.data
        )
        self.api_server = None
        self._stopped = threading.Event()

    @property
    def urgency_threshold(self) -> int:
        countdown = self.config.data.get("countdown") or {}
        return int(countdown.get("urgency_threshold_minutes", DEFAULT_URGENCY_THRESHOLD_MINUTES))

    def _setup_logging(self):
        """Configure logging to write to both file and stdout"""
        logging_config = self.config.data.get("logging") or {}
        root_logger = logging.getLogger()
        for handler in list(root_logger.handlers):
            root_logger.removeHandler(handler)
        root_logger.setLevel(getattr(logging, str(logging_config.get("level", "INFO")).upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        )

        log_file = logging_config.get("file")
        if log_file:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

        logging.info("Prayer badge starting...")

    def handle_config_change(self, new_config: Dict[str, Any]) -> None:
        """Handle configuration changes"""
        self.logger.info("Handling config change")
        try:
            self.background.config = new_config
            self.background.urgency_threshold = self.urgency_threshold
            self.surface.colors.update(new_config.get("badge") or {})
            self.foreground.handle_config_change(new_config)
        except Exception as e:
            self.logger.error(f"Error handling config change: {e}", exc_info=True)

    def start(self, mode: str = "run") -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown mode {mode}, expected one of {MODES}")
        if mode in ("run", "background"):
            self.background.start()
        if mode in ("run", "foreground"):
            self.foreground.open()

        try:
            self.api_server = run_api_server(self)
        except Exception as e:
            self.logger.warning(f"API server not started: {e}")

    def run(self, mode: str = "run") -> None:
        try:
            self.start(mode)
            while not self._stopped.wait(1.0):
                pass
        except KeyboardInterrupt:
            self.logger.info("Interrupted, shutting down")
        finally:
            self.stop()

    def stop(self) -> None:
        self._stopped.set()
        if self.api_server is not None:
            self.api_server.stop()
        self.foreground.close()
        if self.background.started:
            self.background.stop()
        self.synchronizer.stop()
        self.task_manager.stop()
        self.channel.close()
        self.config.cleanup()
