"""SQLite database layer for the activity log and settings."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN IMMEDIATE;")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK;")
        raise
    else:
        conn.execute("COMMIT;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS activities (
            position INTEGER PRIMARY KEY,
            id TEXT NOT NULL,
            start_time TEXT NOT NULL,
            payload TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_activities_start_time
            ON activities(start_time);

        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        );
        """
    )


def fetch_activity_records(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return every stored activity record in log order."""
    rows = conn.execute("SELECT payload FROM activities ORDER BY position;")
    return [json.loads(row["payload"]) for row in rows]


def replace_activity_records(
    conn: sqlite3.Connection, records: Iterable[Mapping[str, Any]]
) -> None:
    """Atomically rewrite the whole activity log."""
    params = [
        (position, record["id"], record["startTime"], json.dumps(record))
        for position, record in enumerate(records)
    ]
    with transaction(conn):
        conn.execute("DELETE FROM activities;")
        conn.executemany(
            """
            INSERT INTO activities (position, id, start_time, payload)
            VALUES (?, ?, ?, ?)
            """,
            params,
        )


def fetch_setting(conn: sqlite3.Connection, key: str) -> Optional[Any]:
    row = conn.execute("SELECT value FROM settings WHERE key = ?;", (key,)).fetchone()
    if row is None:
        return None
    return json.loads(row["value"])


def fetch_all_settings(conn: sqlite3.Connection) -> dict[str, Any]:
    rows = conn.execute("SELECT key, value FROM settings ORDER BY key;")
    return {row["key"]: json.loads(row["value"]) for row in rows}


def upsert_setting(conn: sqlite3.Connection, key: str, value: Any) -> None:
    conn.execute(
        """
        INSERT INTO settings (key, value) VALUES (?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (key, json.dumps(value)),
    )
