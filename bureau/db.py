from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, inspect as sa_inspect, text
from sqlalchemy.orm import Session, sessionmaker

from bureau import config
from bureau.models import Base

_lock = threading.Lock()
_engine = None
_SessionLocal = None

DATA_DIR = Path(__file__).parent / "data"

# Columns added after the first deployment: (table, column, DDL type + default)
_LATE_COLUMNS = (
    ("deals", "project_id", "INTEGER"),
    ("deals", "version", "INTEGER DEFAULT 1"),
    ("projects", "deal_id", "INTEGER"),
    ("projects", "travel_buyout", "FLOAT"),
    ("projects", "stage_completion_json", "TEXT DEFAULT '{}'"),
    ("projects", "version", "INTEGER DEFAULT 1"),
)


def database_url(db_path: str | Path | None = None) -> str:
    """Resolve the SQLAlchemy URL: explicit path, then DATABASE_URL, then the bundled SQLite file."""
    if db_path is not None:
        return f"sqlite:///{Path(db_path)}"
    if config.DATABASE_URL:
        return config.DATABASE_URL
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DATA_DIR / 'bureau.db'}"


def init_db(db_path: str | Path | None = None) -> None:
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        url = database_url(db_path)
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
        _migrate_existing_db(_engine)


def _migrate_existing_db(engine) -> None:
    """Add columns that may be missing in older databases."""
    inspector = sa_inspect(engine)
    for table, column, ddl in _LATE_COLUMNS:
        if not inspector.has_table(table):
            continue
        columns = {col["name"] for col in inspector.get_columns(table)}
        if column not in columns:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager providing a session for scripts and one-off jobs.

    Usage::

        with session_scope() as session:
            ...
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
