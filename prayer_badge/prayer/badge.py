"""
Badge surfaces receive {label, urgent} pairs. Colors are chosen here, from config,
never by the resolver or formatter.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .countdown import Badge, CLEARED_BADGE

DEFAULT_COLORS = {
    "urgent_color": "#dc3545",
    "normal_color": "#2c5530",
    "text_color": "#ffffff",
}


class BadgeSurface(ABC):
    @abstractmethod
    def show(self, badge: Badge) -> None:
        pass

    def clear(self) -> None:
        self.show(CLEARED_BADGE)


class MemoryBadgeSurface(BadgeSurface):
    """Keeps the latest badge for readers such as the API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.colors = {**DEFAULT_COLORS, **(config or {})}
        self.logger = logging.getLogger(self.__class__.__name__)
        self._lock = threading.Lock()
        self.badge: Badge = CLEARED_BADGE
        self.updated_at: Optional[datetime] = None

    def show(self, badge: Badge) -> None:
        with self._lock:
            changed = badge != self.badge
            self.badge = badge
            self.updated_at = datetime.now(timezone.utc)
        if changed:
            self.logger.info(f"Badge: {badge.label!r} (urgent={badge.urgent})")

    def background_color(self, badge: Optional[Badge] = None) -> str:
        badge = badge or self.badge
        return self.colors["urgent_color"] if badge.urgent else self.colors["normal_color"]

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            badge, updated_at = self.badge, self.updated_at
        return {
            "label": badge.label,
            "urgent": badge.urgent,
            "background_color": self.background_color(badge),
            "text_color": self.colors["text_color"],
            "updated_at": updated_at,
        }
