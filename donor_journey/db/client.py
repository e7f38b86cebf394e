"""CRM database access over pymysql.

Every thread keeps its own connection and reopens it when a ping fails, so the
repository can run inside ``asyncio.to_thread`` workers without sharing one.
Statements autocommit individually.
"""

import logging
import os
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Generator

import pymysql
from pymysql.cursors import DictCursor

logger = logging.getLogger(__name__)

_thread_local = threading.local()


@lru_cache(maxsize=1)
def _get_config() -> dict:
    """pymysql.connect() arguments from DONOR_DB_HOST, _PORT, _USER, _PASSWORD and _DATABASE."""
    env = os.environ.get
    return {
        "host": env("DONOR_DB_HOST", "127.0.0.1"),
        "port": int(env("DONOR_DB_PORT", "3306")),
        "user": env("DONOR_DB_USER", "root"),
        "password": env("DONOR_DB_PASSWORD", ""),
        "database": env("DONOR_DB_DATABASE", "donor_crm"),
        "charset": "utf8mb4",
        "cursorclass": DictCursor,
        "autocommit": True,
    }


def get_connection() -> pymysql.Connection:
    """This thread's connection, reopened if the server dropped it."""
    existing = getattr(_thread_local, "conn", None)
    if existing is not None:
        try:
            existing.ping(reconnect=False)
            return existing
        except pymysql.Error:
            logger.debug("Database connection went stale, opening a new one")
            try:
                existing.close()
            except pymysql.Error:
                pass
    _thread_local.conn = pymysql.connect(**_get_config())
    return _thread_local.conn


@contextmanager
def get_cursor() -> Generator[Any, None, None]:
    with get_connection().cursor() as cursor:
        yield cursor


def execute_query(sql: str, params: tuple | None = None, fetch: str = "all") -> list[dict] | dict | None:
    """Run one statement.

    ``fetch`` picks the result: "all" for a list of row dicts, "one" for the
    first row or None, "none" for statements with no result set.

        donor = execute_query("SELECT * FROM donors WHERE id = %s", (donor_id,), fetch="one")
    """
    with get_cursor() as cursor:
        cursor.execute(sql, params or ())
        if fetch == "one":
            return cursor.fetchone()
        if fetch == "all":
            return cursor.fetchall()
        return None


def execute_many(sql: str, params_list: list[tuple]) -> int:
    """Run ``sql`` once per parameter tuple; returns the affected row count."""
    if not params_list:
        return 0
    with get_cursor() as cursor:
        cursor.executemany(sql, params_list)
        return cursor.rowcount


def check_connection() -> bool:
    try:
        with get_cursor() as cursor:
            cursor.execute("SELECT 1")
    except pymysql.Error as e:
        logger.warning(f"Cannot reach the CRM database: {e}")
        return False
    return True
