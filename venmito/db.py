# venmito/db.py
from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Declarative base exported for models.py
Base = declarative_base()

_MEMORY_URLS = {"sqlite://", "sqlite:///:memory:"}


def _sqlite_connect(dbapi_connection, connection_record):  # pragma: no cover - driver hook
    # let SQLAlchemy emit BEGIN itself so SAVEPOINTs behave
    dbapi_connection.isolation_level = None
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_begin(conn):  # pragma: no cover - driver hook
    conn.exec_driver_sql("BEGIN")


def make_engine(url: str, *, echo: bool = False) -> Engine:
    kwargs = {
        "future": True,
        "pool_pre_ping": True,  # avoid stale connections
        "echo": echo,
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in _MEMORY_URLS:
            # one shared connection, otherwise every checkout sees an empty db
            kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    if engine.url.drivername.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_connect)
        event.listen(engine, "begin", _sqlite_begin)
    return engine


class Database:
    """Engine plus session factory, created at start-up and disposed at shutdown."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        self.engine = make_engine(url, echo=echo)
        self.SessionLocal = sessionmaker(
            bind=self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    def session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        logger.info("Disposing engine for %s", self.engine.url.render_as_string(hide_password=True))
        self.engine.dispose()
