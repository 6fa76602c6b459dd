"""
SQLite bootstrap and connection helpers
=======================================

- One database file per owner under the configured directory.
- WAL + pragmatic PRAGMAs; connections are shared with worker threads, so
  every access goes through the handle's asyncio lock.
"""

from __future__ import annotations

import pathlib
import re
import sqlite3

SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_messages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  chat_id TEXT NOT NULL,
  role TEXT NOT NULL,
  content TEXT NOT NULL,
  tool_call_id TEXT,
  tool_calls TEXT,
  timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_chat_id_timestamp
  ON chat_messages (chat_id, timestamp);
"""


_SAFE_OWNER_ID = re.compile(r"^[A-Za-z0-9_-]+$")


def db_path(db_dir: str | pathlib.Path, owner_id: str) -> pathlib.Path:
    if not _SAFE_OWNER_ID.match(owner_id):
        raise ValueError(f"Owner id {owner_id!r} cannot be used as a file name")
    return pathlib.Path(db_dir).resolve() / f"chat_history_{owner_id}.db"


def connect(path: str | pathlib.Path) -> sqlite3.Connection:
    # Autocommit; we use explicit `with conn:` blocks in worker threads.
    conn = sqlite3.connect(
        str(path),
        isolation_level=None,
        check_same_thread=False,
    )

    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA busy_timeout=3000;")

    # dict-like rows
    conn.row_factory = sqlite3.Row

    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the message table and its (chat_id, timestamp) index if absent."""
    with conn:
        conn.executescript(SCHEMA)


def open_user_db(db_dir: str | pathlib.Path, owner_id: str) -> sqlite3.Connection:
    """
    Open (creating if needed) ``owner_id``'s database under ``db_dir``.

    Blocking; callers run it in a worker thread. The connection is closed again
    if schema creation fails so nothing leaks on error.
    """
    path = db_path(db_dir, owner_id)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = connect(path)
    try:
        ensure_schema(conn)
    except Exception:
        conn.close()
        raise
    return conn
