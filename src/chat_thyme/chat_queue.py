"""
Per-conversation serialisation of inbound turns.

Every chat gets one :class:`ChatQueueEntry` and one worker task. The worker
drains the chat's pending turns strictly in arrival order, running each turn
to completion (model call, tool round-trip, persistence) before it looks at
the next one. Different chats have different workers and run concurrently.

The worker never dies because a turn failed: the exception is logged and
handed to the failure reporter, and the loop carries on. It only exits once
its ``stop_signal`` is set by :meth:`ChatQueues.stop`; the entry stays
registered (draining) until then, so a chat never has two workers running turns.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1


@dataclass(slots=True)
class InboundTurn:
    """One user message waiting to be answered."""

    chat_id: str
    owner_id: str
    content: str
    timestamp: datetime
    options: Any = None
    # Platform object the reply goes to (a discord.Message in production).
    source: Any = None


TurnProcessor = Callable[[InboundTurn], Awaitable[None]]
FailureReporter = Callable[[InboundTurn, Exception], Awaitable[None]]


@dataclass(slots=True, eq=False)
class ChatQueueEntry:
    chat_id: str
    pending: deque[InboundTurn] = field(default_factory=deque)
    stop_signal: bool = False
    worker: asyncio.Task | None = None


class ChatQueues:
    """Registry of per-chat queues and their workers."""

    def __init__(
        self,
        process: TurnProcessor,
        on_error: FailureReporter,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self._process = process
        self._on_error = on_error
        self.poll_interval = poll_interval
        self._entries: dict[str, ChatQueueEntry] = {}
        self._workers: set[asyncio.Task] = set()

    def __contains__(self, chat_id: object) -> bool:
        return chat_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entry(self, chat_id: str) -> ChatQueueEntry | None:
        return self._entries.get(chat_id)

    def enqueue(self, turn: InboundTurn) -> ChatQueueEntry:
        """
        Append ``turn`` to its chat's queue, starting a worker if needed.

        A chat that is still draining gets a fresh entry whose worker waits for
        the old worker to exit before taking its first turn.
        """

        entry = self._entries.get(turn.chat_id)
        if entry is None or entry.stop_signal:
            previous = entry.worker if entry is not None else None
            entry = ChatQueueEntry(chat_id=turn.chat_id)
            self._entries[turn.chat_id] = entry
            entry.worker = asyncio.create_task(self._run(entry, previous), name=f"chat-queue-{turn.chat_id}")
            self._workers.add(entry.worker)
            entry.worker.add_done_callback(partial(self._worker_done, entry))
            logger.info("Started queue worker for chat %s", turn.chat_id)

        entry.pending.append(turn)
        return entry

    def stop(self, chat_id: str) -> bool:
        """
        Tear down ``chat_id``'s queue.

        The entry stays registered while its worker finishes the current turn
        and is dropped once the worker exits; turns still pending are never
        processed. Returns False if the chat had no live queue.
        """

        entry = self._entries.get(chat_id)
        if entry is None or entry.stop_signal:
            return False
        entry.stop_signal = True
        if entry.pending:
            logger.info("Stopping chat %s with %d unprocessed turn(s)", chat_id, len(entry.pending))
        return True

    async def stop_all(self) -> None:
        """Stop every chat and wait for the workers to exit."""

        for chat_id in list(self._entries):
            self.stop(chat_id)
        workers = list(self._workers)
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    async def _run(self, entry: ChatQueueEntry, previous: asyncio.Task | None = None) -> None:
        if previous is not None and not previous.done():
            logger.debug("Chat %s waiting for previous worker to drain", entry.chat_id)
            await asyncio.wait({previous})

        while not entry.stop_signal:
            if not entry.pending:
                await asyncio.sleep(self.poll_interval)
                continue

            turn = entry.pending.popleft()
            try:
                await self._process(turn)
            except Exception as exc:
                logger.exception("Error processing message in chat %s", entry.chat_id)
                try:
                    await self._on_error(turn, exc)
                except Exception:
                    logger.exception("Failed to report error for chat %s", entry.chat_id)

        logger.info("Queue worker for chat %s stopped", entry.chat_id)

    def _worker_done(self, entry: ChatQueueEntry, task: asyncio.Task) -> None:
        self._workers.discard(task)
        if self._entries.get(entry.chat_id) is entry:
            del self._entries[entry.chat_id]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Queue worker %s exited unexpectedly: %r", task.get_name(), exc)


__all__ = ["ChatQueueEntry", "ChatQueues", "InboundTurn"]
