# backend/orgcal/db.py
"""Engine, session factory and declarative base."""

from __future__ import annotations

from typing import Generator
from os import getenv
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker


def _normalize_db_url(url: str) -> str:
    """Hosted Postgres URLs come as postgres://; point them at psycopg2."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return url.replace(prefix, "postgresql+psycopg2://", 1)
    return url


RAW_URL = getenv("DATABASE_URL")
DB_URL = (
    _normalize_db_url(RAW_URL)
    if RAW_URL
    else f"sqlite:///{(Path(__file__).resolve().parents[1] / 'orgcal.db')}"
)

is_sqlite = DB_URL.startswith("sqlite")

engine = create_engine(
    DB_URL,
    echo=getenv("SQL_ECHO") == "1",
    future=True,
    pool_pre_ping=True,
    connect_args=({"check_same_thread": False} if is_sqlite else {}),
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


class Base(DeclarativeBase):
    pass


def init_db() -> None:
    """Create missing tables straight from the models (dev and tests)."""
    from . import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def get_db() -> Generator:
    """Session per request, always closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
