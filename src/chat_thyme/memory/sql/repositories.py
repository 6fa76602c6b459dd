"""
Repositories (SQL-only)
=======================
- Pure CRUD over one owner's ``chat_messages`` table.
- Tool message content is stored as JSON and decoded on read; user and
  assistant content is stored verbatim.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Literal, Sequence

Role = Literal["user", "assistant", "tool"]
ROLES: tuple[str, ...] = ("user", "assistant", "tool")


def to_iso(ts: datetime) -> str:
    """Normalise ``ts`` to a sortable ISO-8601 UTC string (naive means UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


@dataclass(slots=True)
class StoredMessage:
    """One persisted conversation turn."""

    chat_id: str
    role: Role
    content: Any
    timestamp: datetime
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None
    id: int | None = field(default=None, compare=False)

    def to_llm(self) -> dict[str, Any]:
        """Return this row as a chat-completions message."""

        msg: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.role == "tool":
            msg["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            msg["tool_calls"] = self.tool_calls
        return msg


def _encode_content(role: str, content: Any) -> str:
    if role == "tool":
        return json.dumps(content, ensure_ascii=False)
    if content is None:
        return ""
    if not isinstance(content, str):
        raise TypeError(f"{role} message content must be text, got {type(content).__name__}")
    return content


def _decode_content(role: str, raw: str) -> Any:
    if role == "tool":
        return json.loads(raw)
    return raw


def _row_params(msg: StoredMessage) -> tuple[Any, ...]:
    if msg.role not in ROLES:
        raise ValueError(f"Unsupported message role {msg.role!r}")
    if msg.role == "tool" and not msg.tool_call_id:
        raise ValueError("Tool messages require a tool_call_id")
    return (
        msg.chat_id,
        msg.role,
        _encode_content(msg.role, msg.content),
        msg.tool_call_id,
        json.dumps(msg.tool_calls) if msg.tool_calls else None,
        to_iso(msg.timestamp),
    )


class ChatMessagesRepo:
    """Async CRUD helpers for the ``chat_messages`` table."""

    _INSERT = """
        INSERT INTO chat_messages (chat_id, role, content, tool_call_id, tool_calls, timestamp)
        VALUES (?, ?, ?, ?, ?, ?)
    """

    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def chat_exists(self, chat_id: str) -> bool:
        """Return True if any message exists for ``chat_id``."""
        sql = "SELECT EXISTS(SELECT 1 FROM chat_messages WHERE chat_id=?)"

        def _query() -> bool:
            return bool(self.conn.execute(sql, (chat_id,)).fetchone()[0])

        async with self._lock:
            return await asyncio.to_thread(_query)  # blocking sqlite call

    async def append_message(
        self,
        chat_id: str,
        role: Role,
        content: Any,
        timestamp: datetime,
        tool_call_id: str | None = None,
        tool_calls: list[dict[str, Any]] | None = None,
    ) -> None:
        """
        Insert a single message row.

        :param content: Text for user/assistant turns; JSON-serialisable
            structure for tool turns.
        :param timestamp: When the turn was produced.
        """
        await self.append_messages(
            [
                StoredMessage(
                    chat_id=chat_id,
                    role=role,
                    content=content,
                    timestamp=timestamp,
                    tool_call_id=tool_call_id,
                    tool_calls=tool_calls,
                )
            ]
        )

    async def append_messages(self, messages: Iterable[StoredMessage]) -> None:
        """Insert ``messages`` in order inside one transaction."""
        params = [_row_params(msg) for msg in messages]
        if not params:
            return

        def _run():
            # isolation_level=None never opens a transaction implicitly.
            with self.conn:
                self.conn.execute("BEGIN")
                self.conn.executemany(self._INSERT, params)

        async with self._lock:
            await asyncio.to_thread(_run)  # blocking sqlite call

    async def fetch_messages(self, chat_id: str) -> list[StoredMessage]:
        """Return every stored message of ``chat_id`` oldest first."""
        sql = """
            SELECT id, chat_id, role, content, tool_call_id, tool_calls, timestamp
            FROM chat_messages
            WHERE chat_id=?
            ORDER BY timestamp ASC, id ASC
        """

        def _query() -> Sequence[sqlite3.Row]:
            return self.conn.execute(sql, (chat_id,)).fetchall()

        async with self._lock:
            rows = await asyncio.to_thread(_query)  # blocking sqlite call

        return [
            StoredMessage(
                id=row["id"],
                chat_id=row["chat_id"],
                role=row["role"],
                content=_decode_content(row["role"], row["content"]),
                tool_call_id=row["tool_call_id"],
                tool_calls=json.loads(row["tool_calls"]) if row["tool_calls"] else None,
                timestamp=from_iso(row["timestamp"]),
            )
            for row in rows
        ]

    async def fetch_history(self, chat_id: str, system_prompt: str) -> list[dict[str, Any]]:
        """
        Return the model-ready history of ``chat_id``.

        The first entry is always a ``system`` message carrying
        ``system_prompt``; it is never persisted.
        """
        return build_history(await self.fetch_messages(chat_id), system_prompt)


def build_history(stored: Iterable[StoredMessage], system_prompt: str) -> list[dict[str, Any]]:
    return [{"role": "system", "content": system_prompt}] + [m.to_llm() for m in stored]


__all__ = ["ChatMessagesRepo", "StoredMessage", "Role", "build_history", "to_iso", "from_iso"]
