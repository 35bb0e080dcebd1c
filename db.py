from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()

# Bound to an engine by init_engine(); importable before that so tests and
# scripts can `from db import SessionLocal` at module import time.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

_engine: Engine | None = None
_log = logging.getLogger("db")


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first DML statement, which breaks
    # SAVEPOINT semantics. Take over transaction control explicitly.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):
        dbapi_conn.isolation_level = None
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def init_engine(database_url: str) -> Engine:
    global _engine

    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("Missing DATABASE_URL")

    kwargs: dict[str, Any] = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_pre_ping=True, pool_size=10, max_overflow=20, pool_recycle=1800)

    engine = create_engine(url, **kwargs)
    if url.startswith("sqlite"):
        _configure_sqlite(engine)

    if _engine is not None:
        _engine.dispose()
    _engine = engine
    SessionLocal.configure(bind=engine)
    _log.info("engine initialised dialect=%s", engine.dialect.name)
    return engine


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("DB not initialized")
    return _engine


def ping_db() -> bool:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        _log.warning("database ping failed", exc_info=True)
        return False


def get_pool_stats() -> dict[str, Any]:
    if _engine is None:
        return {"initialized": False}
    pool = _engine.pool
    out: dict[str, Any] = {"initialized": True, "class": type(pool).__name__}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, name, None)
        if callable(fn):
            try:
                out[name] = fn()
            except Exception:
                out[name] = None
    return out
