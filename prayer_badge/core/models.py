"""
Core DB models: named plain records (the shared store) and alarm schedules (timer phase persistence).
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, String, Integer, DateTime, JSON, select

from prayer_badge.core.db import Base, session_scope


def _utc_now() -> datetime:
    """UTC now as naive datetime for DateTime(timezone=False) columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class StoredRecord(Base):
    """One named plain record. value is JSON: strings, numbers, bools, lists, dicts."""
    __tablename__ = "stored_records"

    key = Column(String(255), primary_key=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(DateTime(timezone=False), default=_utc_now, nullable=False)


class TaskSchedule(Base):
    """Phase of a named repeating alarm so a freshly woken process can see how it is aligned."""
    __tablename__ = "task_schedules"

    name = Column(String(255), primary_key=True)
    period_seconds = Column(Integer, nullable=False)
    anchor_epoch_seconds = Column(Integer, nullable=False)  # first aligned firing
    next_run_at = Column(DateTime(timezone=False), nullable=True)  # naive UTC
    created_at = Column(DateTime(timezone=False), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=False), default=_utc_now, onupdate=_utc_now, nullable=False)


def upsert_task_schedule(name: str, period_seconds: int, anchor_epoch_seconds: int) -> None:
    """Create or replace the schedule row for an alarm."""
    next_run_at = datetime.fromtimestamp(anchor_epoch_seconds, tz=timezone.utc).replace(tzinfo=None)
    with session_scope() as session:
        row = session.execute(
            select(TaskSchedule).where(TaskSchedule.name == name)
        ).scalars().first()
        now = _utc_now()
        if row:
            row.period_seconds = period_seconds
            row.anchor_epoch_seconds = anchor_epoch_seconds
            row.next_run_at = next_run_at
            row.updated_at = now
        else:
            session.add(TaskSchedule(
                name=name,
                period_seconds=period_seconds,
                anchor_epoch_seconds=anchor_epoch_seconds,
                next_run_at=next_run_at,
                created_at=now,
                updated_at=now,
            ))


def get_task_schedule(name: str) -> Optional[TaskSchedule]:
    with session_scope() as session:
        return session.execute(
            select(TaskSchedule).where(TaskSchedule.name == name)
        ).scalars().first()


def get_all_task_schedules() -> List[Dict[str, Any]]:
    """Return all TaskSchedule rows as list of dicts (for API). Datetimes are naive UTC."""
    with session_scope() as session:
        rows = list(session.execute(select(TaskSchedule)).scalars().all())
    return [
        {
            "name": r.name,
            "period_seconds": r.period_seconds,
            "anchor_epoch_seconds": r.anchor_epoch_seconds,
            "next_run_at": r.next_run_at,
        }
        for r in rows
    ]
