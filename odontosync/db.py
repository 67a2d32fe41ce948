from __future__ import annotations

import enum
from contextlib import contextmanager
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo
from typing import Any, Iterator

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from .config import DATABASE_URL, TIMEZONE

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,              # set True to see the SQL
    future=True,
    connect_args=_connect_args,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
    expire_on_commit=False
)


class Base(DeclarativeBase):
    """ORM base for every model."""
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, as stored in the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def clinic_today() -> date:
    """Current date in the clinic's timezone (payment, receiving and report days)."""
    return datetime.now(ZoneInfo(TIMEZONE)).date()


@contextmanager
def db_session() -> Iterator[Session]:
    """
    Session context manager:
    - commit when everything went fine
    - rollback on exceptions
    - always close
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def row_to_dict(obj: Any, exclude: tuple[str, ...] = ()) -> dict[str, Any]:
    """
    Flat, serializable copy of the mapped columns of an ORM instance.
    Avoids lazy loads and DetachedInstanceError once the session is closed.
    """
    out: dict[str, Any] = {}
    for attr in inspect(obj).mapper.column_attrs:
        if attr.key in exclude:
            continue
        value = getattr(obj, attr.key)
        if isinstance(value, enum.Enum):
            value = value.value
        out[attr.key] = value
    return out
