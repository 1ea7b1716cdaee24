"""
Prayer API. Mounted at /api/prayer/.
State is rebuilt from the stored record on every request.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from .codec import local_date_key
from .countdown import describe, format_state
from .errors import StaleRecordError
from .service import get_prayer_times_record, load_prayer_times
from .resolver import resolve


class BadgeResponse(BaseModel):
    label: str
    urgent: bool
    background_color: str
    text_color: str
    updated_at: Optional[datetime] = None


class StateResponse(BaseModel):
    date: str
    resolved: bool
    current: Optional[str] = None
    next: Optional[str] = None
    next_at: Optional[datetime] = None
    is_tomorrow: bool = False
    delta_seconds: Optional[int] = None
    label: str = ""
    verbose_label: str = ""
    urgent: bool = False
    description: str = ""
    reason: Optional[str] = None


def get_router(prayer_app) -> Optional[APIRouter]:
    """Return router for the prayer surface; mounted with prefix /api/prayer."""
    router = APIRouter(tags=["Prayer Times"])

    @router.get("/badge", response_model=BadgeResponse)
    def get_badge() -> BadgeResponse:
        """Latest badge shown by the background context."""
        return BadgeResponse(**prayer_app.surface.snapshot())

    @router.get("/state", response_model=StateResponse)
    def get_state() -> StateResponse:
        """Current/next prayer computed now from the stored record."""
        now = prayer_app.synchronizer.clock()
        today = local_date_key(now)
        try:
            event_set = load_prayer_times(prayer_app.store, today)
        except StaleRecordError as e:
            raise HTTPException(status_code=409, detail=str(e))
        if event_set is None:
            raise HTTPException(status_code=404, detail="No prayer times data available")

        threshold = prayer_app.urgency_threshold
        state = resolve(event_set, now)
        if not state.resolved:
            return StateResponse(
                date=event_set.date,
                resolved=False,
                current=state.current.value if state.current else None,
                reason=state.reason,
            )
        badge = format_state(state, threshold)
        return StateResponse(
            date=event_set.date,
            resolved=True,
            current=state.current.value if state.current else None,
            next=state.next.name.value,
            next_at=state.next.timestamp,
            is_tomorrow=state.next.is_tomorrow,
            delta_seconds=int(state.delta.total_seconds()),
            label=badge.label,
            verbose_label=format_state(state, threshold, verbose=True).label,
            urgent=badge.urgent,
            description=describe(state),
        )

    @router.get("/record")
    def get_record() -> Dict[str, Any]:
        """Stored prayer times record as persisted."""
        record = get_prayer_times_record(prayer_app.store)
        if record is None:
            raise HTTPException(status_code=404, detail="No prayer times data available")
        return record

    return router
