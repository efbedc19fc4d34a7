"""
Engine and session plumbing.

Handlers share one session per request through ``db_session()``; it is rolled back
when the request failed and always closed at teardown. Scripts and tests use
``session_scope(app)``.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from collections.abc import Generator
from typing import Any

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)


def _engine_options(db_url: str) -> dict[str, Any]:
    opts: dict[str, Any] = {"pool_pre_ping": True}
    if db_url.startswith("postgres"):
        opts.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    return opts


def _enforce_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores ON DELETE rules unless foreign keys are switched on per connection."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):  # type: ignore[no-redef]
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def init_db(app: Flask) -> Engine:
    db_url = str(app.config["DATABASE_URL"])
    engine = create_engine(db_url, **_engine_options(db_url))
    if engine.dialect.name == "sqlite":
        _enforce_sqlite_foreign_keys(engine)
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = sessionmaker(
        bind=engine,
        class_=Session,
        autoflush=False,
        expire_on_commit=False,
    )
    logger.info("Database engine ready (dialect=%s)", engine.dialect.name)
    return engine


def db_session() -> Session:
    """Request-scoped session."""
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        s = current_app.extensions["sqlalchemy_sessionmaker"]()
        g.db_session = s
    return s


def teardown_db_session(exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is None:
        return
    try:
        if exc is not None:
            s.rollback()
    finally:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
