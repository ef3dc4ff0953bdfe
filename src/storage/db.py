"""Database engine, request sessions and the health probe."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from time import perf_counter
from typing import Any, Dict, Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from src.core.config import get_settings


Base = declarative_base()


@dataclass(frozen=True)
class DatabaseProbe:
    ok: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "latency_ms": self.latency_ms, "error": self.error}


def _engine_options(database_url: str) -> Dict[str, Any]:
    if database_url.startswith("sqlite"):
        return {"future": True, "connect_args": {"check_same_thread": False}}
    return {"future": True, "pool_pre_ping": True}


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    database_url = get_settings().database_url
    return create_engine(database_url, **_engine_options(database_url))


@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    # Services keep using rows after commit, so attributes must not expire.
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)


def get_session() -> Generator[Session, None, None]:
    session = get_session_factory()()
    try:
        yield session
    finally:
        session.close()


def probe_database() -> DatabaseProbe:
    started = perf_counter()
    try:
        with get_engine().connect() as connection:
            connection.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:  # pragma: no cover
        return DatabaseProbe(ok=False, error=str(exc))
    return DatabaseProbe(ok=True, latency_ms=round((perf_counter() - started) * 1000, 2))


def load_models() -> None:
    """Import ORM models so Base metadata contains all mapped tables."""

    import src.storage.models  # noqa: F401
