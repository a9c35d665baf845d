import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine for the ledger database.

    SQLite connections get foreign keys enforced so that transactions can't
    point at a deleted category or user.
    """
    if _is_sqlite(database_url):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        eng = create_engine(database_url, connect_args=connect_args, **kwargs)
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        return eng
    return create_engine(database_url, **kwargs)


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = build_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def create_schema(bind: Optional[Engine] = None) -> None:
    """Create any missing tables. Alembic remains the source of truth for upgrades."""
    import models  # noqa: F401  registers the mapped tables

    target = bind or engine
    Base.metadata.create_all(target)
    logger.info(f"schema_ready: tables={len(Base.metadata.tables)}")


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
