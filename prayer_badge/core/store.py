"""
Named plain-record store on top of the DB, with change notification.

Writers replace whole records (never patch fields), so two contexts writing the
same key cannot interleave partial updates. Listeners get the set of changed keys
after the transaction commits.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from sqlalchemy import select, delete

from prayer_badge.core.db import session_scope
from prayer_badge.core.models import StoredRecord

ChangeListener = Callable[[Set[str]], None]


class RecordStore:
    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._listeners: List[ChangeListener] = []

    def get(self, keys: Iterable[str]) -> Dict[str, Any]:
        """Return {key: value} for keys that exist."""
        keys = list(keys)
        if not keys:
            return {}
        with session_scope() as session:
            rows = session.execute(
                select(StoredRecord).where(StoredRecord.key.in_(keys))
            ).scalars().all()
            return {row.key: row.value for row in rows}

    def get_one(self, key: str, default: Any = None) -> Any:
        return self.get([key]).get(key, default)

    def set(self, records: Mapping[str, Any]) -> None:
        """Overwrite each given record as a whole, then notify listeners."""
        if not records:
            return
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        with session_scope() as session:
            session.execute(delete(StoredRecord).where(StoredRecord.key.in_(list(records))))
            for key, value in records.items():
                session.add(StoredRecord(key=key, value=value, updated_at=now))
        self.logger.debug(f"Stored records: {sorted(records)}")
        self._notify(set(records))

    def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        with session_scope() as session:
            session.execute(delete(StoredRecord).where(StoredRecord.key.in_(keys)))
        self._notify(set(keys))

    def add_listener(self, listener: ChangeListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, changed: Set[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(changed)
            except Exception as e:
                self.logger.error(f"Error in store change listener: {e}", exc_info=True)

    def updated_at(self, key: str) -> Optional[datetime]:
        with session_scope() as session:
            row = session.execute(
                select(StoredRecord).where(StoredRecord.key == key)
            ).scalars().first()
            return row.updated_at if row else None
