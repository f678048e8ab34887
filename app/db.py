"""Postgres access for preference persistence (pooled psycopg2 connections)."""

from __future__ import annotations

import contextvars
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Iterator

import psycopg2
import psycopg2.extras
from psycopg2.pool import SimpleConnectionPool


logger = logging.getLogger("vista.db")
query_logger = logging.getLogger("vista.db.query")


@dataclass(frozen=True)
class DbSettings:
    url: str
    pool_min: int = 1
    pool_max: int = 5
    slow_ms: float = 200.0
    log_all: bool = False

    @classmethod
    def from_env(cls) -> "DbSettings":
        url = os.getenv("DATABASE_URL")
        if not url:
            raise RuntimeError("DATABASE_URL is required when USE_DB=1")
        return cls(
            url=url,
            pool_min=int(os.getenv("VISTA_DB_POOL_MIN", "1")),
            pool_max=int(os.getenv("VISTA_DB_POOL_MAX", "5")),
            slow_ms=float(os.getenv("VISTA_QUERY_SLOW_MS", "200")),
            log_all=os.getenv("VISTA_QUERY_LOG", "").strip() == "1",
        )


_settings: DbSettings | None = None
_pool: SimpleConnectionPool | None = None
# time spent in queries for the current request, read by the timing middleware
_request_db_ms: contextvars.ContextVar[float] = contextvars.ContextVar("vista_db_ms", default=0.0)


def settings() -> DbSettings:
    global _settings
    if _settings is None:
        _settings = DbSettings.from_env()
    return _settings


def pool() -> SimpleConnectionPool:
    global _pool
    if _pool is None:
        cfg = settings()
        _pool = SimpleConnectionPool(cfg.pool_min, cfg.pool_max, dsn=cfg.url)
        logger.info("db_pool_ready min=%s max=%s", cfg.pool_min, cfg.pool_max)
    return _pool


def reset_db_ms() -> None:
    _request_db_ms.set(0.0)


def get_db_ms() -> float:
    return _request_db_ms.get()


def _shorten(params: Iterable[Any] | None) -> list | None:
    if params is None:
        return None
    return [f"{p[:40]}...{p[-10:]}" if isinstance(p, str) and len(p) > 80 else p for p in params]


@contextmanager
def _timed_cursor(conn, query_name: str | None, params: Iterable[Any] | None, **cursor_kwargs) -> Iterator[Any]:
    start = time.perf_counter()
    with conn.cursor(**cursor_kwargs) as cur:
        yield cur
        rowcount = cur.rowcount
    elapsed_ms = (time.perf_counter() - start) * 1000
    _request_db_ms.set(_request_db_ms.get() + elapsed_ms)

    cfg = _settings
    slow = cfg is not None and elapsed_ms >= cfg.slow_ms
    if slow:
        query_logger.warning(
            "db_slow_query name=%s ms=%.2f rows=%s params=%s", query_name or "unnamed", elapsed_ms, rowcount, _shorten(params)
        )
    elif query_name or (cfg is not None and cfg.log_all):
        query_logger.info("db_query name=%s ms=%.2f rows=%s", query_name or "unnamed", elapsed_ms, rowcount)


@contextmanager
def get_conn():
    """Borrow a pooled connection; commit on success, roll back on error."""
    p = pool()
    conn = p.getconn()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        p.putconn(conn)


def fetch_one(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> dict | None:
    with _timed_cursor(conn, query_name, params, cursor_factory=psycopg2.extras.RealDictCursor) as cur:
        cur.execute(sql, params or [])
        row = cur.fetchone()
    return dict(row) if row else None


def execute(conn, sql: str, params: Iterable[Any] | None = None, query_name: str | None = None) -> int:
    with _timed_cursor(conn, query_name, params) as cur:
        cur.execute(sql, params or [])
        rowcount = cur.rowcount
    return rowcount
