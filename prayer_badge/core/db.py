"""
SQLAlchemy engine and session for the shared record store.
The SQLite file is shared by the foreground and background contexts; alarm
timers and message handlers use it from their own threads.
"""
import logging
from pathlib import Path
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session

logger = logging.getLogger(__name__)

Base = declarative_base()

DEFAULT_DATA_DIR = Path.home() / ".prayer_badge"
DEFAULT_DB_NAME = "records.db"

_engine = None
_SessionLocal = None


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """One unit of work: commit when the block succeeds, roll back when it raises."""
    if _SessionLocal is None:
        raise RuntimeError("Record store database is not open, call init_db() first")
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_engine():
    return _engine


def database_url(config_data: Optional[Dict[str, Any]] = None) -> str:
    """SQLite URL for database.path, or the per-user default file."""
    path = ((config_data or {}).get("database") or {}).get("path")
    path = Path(path).expanduser().resolve() if path else DEFAULT_DATA_DIR / DEFAULT_DB_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{path}"


def init_db(config_data: Optional[Dict[str, Any]] = None, db_url: Optional[str] = None) -> None:
    """Open the database (once per process) and create missing tables."""
    global _engine, _SessionLocal

    if _engine is not None:
        logger.debug("Database already initialized")
        return

    db_url = db_url or database_url(config_data)
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    _engine = create_engine(db_url, echo=False, future=True, connect_args=connect_args)

    # Register tables with Base
    from prayer_badge.core import models as _core_models  # noqa: F401

    Base.metadata.create_all(_engine)
    _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)
    logger.info(f"Record store opened: {db_url.split('?')[0]}")


def close_db() -> None:
    """Dispose the engine so init_db() can open another database."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
        logger.debug("Record store closed")
    _engine = None
    _SessionLocal = None
