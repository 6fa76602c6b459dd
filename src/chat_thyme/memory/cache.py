"""
Per-owner SQLite connection cache.

Each owner gets one :class:`UserDb` handle, opened lazily on the first
:meth:`UserDbCache.acquire` and shared by every conversation of that owner.
Entries are reference counted: a handle is only closed by the TTL sweep or by
capacity eviction once nobody holds it, or unconditionally by
:meth:`UserDbCache.clear` at shutdown.

Every read-modify-write of the map happens under one :class:`asyncio.Lock`.
The event loop is single threaded, but opening a database awaits a worker
thread, and two interleaved acquires for the same new owner must not both
decide to open it.

The capacity is a soft cap: when it is reached and every entry is in use, the
new handle is inserted anyway rather than blocking the caller.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable

from chat_thyme import maintenance
from chat_thyme.memory.sql.db import open_user_db
from chat_thyme.memory.sql.repositories import ChatMessagesRepo

logger = logging.getLogger(__name__)

Opener = Callable[[str | Path, str], sqlite3.Connection]


@dataclass(slots=True, eq=False)
class UserDb:
    """Open storage handle for one owner."""

    owner_id: str
    conn: sqlite3.Connection
    # Serialises this connection's worker-thread calls.
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def messages(self) -> ChatMessagesRepo:
        return ChatMessagesRepo(self.conn, self.lock)

    def close(self) -> None:
        self.conn.close()


@dataclass(slots=True)
class CacheEntry:
    db: UserDb
    last_accessed: float
    ref_count: int = 0


class UserDbCache:
    """Bounded, reference-counted map of owner id to :class:`UserDb`."""

    def __init__(
        self,
        db_dir: str | Path,
        capacity: int,
        *,
        opener: Opener = open_user_db,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.db_dir = Path(db_dir)
        self.capacity = capacity
        self._opener = opener
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: asyncio.Task | None = None

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #
    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._entries

    def entry(self, owner_id: str) -> CacheEntry | None:
        return self._entries.get(owner_id)

    @property
    def sweep_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    # ------------------------------------------------------------------ #
    # Reference counting
    # ------------------------------------------------------------------ #
    async def acquire(self, owner_id: str) -> UserDb:
        """
        Return ``owner_id``'s handle, opening it if needed, and take a reference.

        Errors while creating the database propagate and leave no entry behind.
        """
        async with self._lock:
            entry = self._entries.get(owner_id)
            if entry is not None:
                entry.last_accessed = self._clock()
                entry.ref_count += 1
                return entry.db

            logger.info("No cached database for owner %s; opening one in %s", owner_id, self.db_dir)
            conn = await asyncio.to_thread(self._opener, self.db_dir, owner_id)
            db = UserDb(owner_id=owner_id, conn=conn)

            if len(self._entries) >= self.capacity:
                self._evict_one_idle()

            self._entries[owner_id] = CacheEntry(db=db, last_accessed=self._clock(), ref_count=1)
            return db

    async def release(self, owner_id: str) -> None:
        """Drop one reference to ``owner_id``'s handle. Never closes it."""
        async with self._lock:
            entry = self._entries.get(owner_id)
            if entry is None:
                logger.warning("Release requested for owner %s with no cached database", owner_id)
                return
            entry.ref_count = max(0, entry.ref_count - 1)

    @asynccontextmanager
    async def borrow(self, owner_id: str) -> AsyncIterator[UserDb]:
        """``async with`` form of :meth:`acquire`/:meth:`release`."""
        db = await self.acquire(owner_id)
        try:
            yield db
        finally:
            await self.release(owner_id)

    def _evict_one_idle(self) -> None:
        # Caller holds self._lock.
        idle = [(entry.last_accessed, owner) for owner, entry in self._entries.items() if entry.ref_count == 0]
        if not idle:
            logger.warning(
                "Database cache at capacity (%d) with every connection in use; exceeding the limit",
                self.capacity,
            )
            return
        _, owner = min(idle)
        logger.info("Database cache at capacity; closing least recently used database for owner %s", owner)
        self._close_entry(owner)

    def _close_entry(self, owner_id: str) -> None:
        entry = self._entries.pop(owner_id)
        try:
            entry.db.close()
        except sqlite3.Error:
            logger.exception("Failed to close database for owner %s", owner_id)

    # ------------------------------------------------------------------ #
    # Eviction
    # ------------------------------------------------------------------ #
    async def evict_expired(self, ttl: float) -> list[str]:
        """
        Close every idle entry not accessed for more than ``ttl`` seconds.

        Returns the evicted owner ids.
        """
        async with self._lock:
            now = self._clock()
            expired = [
                owner
                for owner, entry in self._entries.items()
                if now - entry.last_accessed > ttl and entry.ref_count == 0
            ]
            for owner in expired:
                logger.info("TTL expired and no active references for owner %s. Closing database.", owner)
                self._close_entry(owner)
            return expired

    async def start_eviction_sweep(self, ttl: float, interval: float) -> None:
        """Run :meth:`evict_expired` every ``interval`` seconds. Idempotent."""
        if self.sweep_running:
            return

        async def _sweep() -> None:
            await self.evict_expired(ttl)

        logger.info("Starting database cache sweep (ttl=%ss, interval=%ss)", ttl, interval)
        self._sweep_task = await maintenance.startup(_sweep, interval, name="db-cache-sweep")

    async def clear(self) -> None:
        """Close every handle regardless of references and stop the sweep."""
        async with self._lock:
            logger.info("Clearing all database connections and stopping cache maintenance.")
            for owner in list(self._entries):
                self._close_entry(owner)
            task, self._sweep_task = self._sweep_task, None
            if task is not None:
                task.cancel()
        await maintenance.shutdown(task)


__all__ = ["CacheEntry", "UserDb", "UserDbCache"]
