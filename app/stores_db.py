"""DB-backed preference store."""

from __future__ import annotations

import logging
from contextvars import ContextVar
from datetime import datetime, timezone

from app.db import execute, fetch_one, get_conn


logger = logging.getLogger("vista.db")

_USER_ID: ContextVar[str] = ContextVar("user_id", default="default")

_CREATE_SQL = """
create table if not exists user_view_prefs (
    user_id text not null,
    pref_key text not null,
    value text not null,
    updated_at text not null,
    primary key (user_id, pref_key)
)
"""


def get_user_id() -> str:
    return _USER_ID.get()


def set_user_id(value: str):
    return _USER_ID.set(value)


def reset_user_id(token) -> None:
    _USER_ID.reset(token)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class DbPreferenceStore:
    """Key/value preferences in ``user_view_prefs``, scoped to the current user."""

    def __init__(self, ensure_table: bool = True) -> None:
        self._table_ready = not ensure_table

    def _ensure_table(self, conn) -> None:
        if self._table_ready:
            return
        execute(conn, _CREATE_SQL, query_name="view_prefs.create_table")
        self._table_ready = True
        logger.info("db_table_ready table=user_view_prefs")

    def get(self, key: str) -> str | None:
        with get_conn() as conn:
            self._ensure_table(conn)
            row = fetch_one(
                conn,
                "select value from user_view_prefs where user_id=%s and pref_key=%s",
                [get_user_id(), key],
                query_name="view_prefs.get",
            )
        return row.get("value") if row else None

    def set(self, key: str, value: str) -> None:
        with get_conn() as conn:
            self._ensure_table(conn)
            execute(
                conn,
                """
                insert into user_view_prefs (user_id, pref_key, value, updated_at)
                values (%s, %s, %s, %s)
                on conflict (user_id, pref_key)
                do update set value=excluded.value, updated_at=excluded.updated_at
                """,
                [get_user_id(), key, value, _now()],
                query_name="view_prefs.set",
            )
