"""
Registry of the Discord threads that front a chat.

A thread is registered when ``/start-chat`` or ``/resume-chat`` creates it.
The archived-thread sweep locks and forgets threads Discord has archived and
forgets channels that vanished; either way the chat's queue is torn down.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator

import discord

from chat_thyme.chat_queue import ChatQueues
from chat_thyme.clients.oai import ModelOptions

logger = logging.getLogger(__name__)

ARCHIVE_SWEEP_INTERVAL = 30 * 60

ChannelFetcher = Callable[[int], Awaitable[object]]


@dataclass(slots=True)
class ChatThreadInfo:
    chat_id: str
    owner_id: str
    options: ModelOptions


class ActiveThreads:
    """Thread id to :class:`ChatThreadInfo`."""

    def __init__(self) -> None:
        self._threads: dict[int, ChatThreadInfo] = {}

    def register(self, thread_id: int, info: ChatThreadInfo) -> None:
        self._threads[thread_id] = info
        logger.info("Registered thread %s for chat %s", thread_id, info.chat_id)

    def get(self, thread_id: int) -> ChatThreadInfo | None:
        return self._threads.get(thread_id)

    def remove(self, thread_id: int) -> ChatThreadInfo | None:
        return self._threads.pop(thread_id, None)

    def items(self) -> Iterator[tuple[int, ChatThreadInfo]]:
        return iter(list(self._threads.items()))

    def __len__(self) -> int:
        return len(self._threads)

    def __contains__(self, thread_id: object) -> bool:
        return thread_id in self._threads


async def sweep_archived_threads(fetch_channel: ChannelFetcher, threads: ActiveThreads, queues: ChatQueues) -> int:
    """
    Run one pass over the registered threads.

    ``fetch_channel`` is ``bot.fetch_channel``. Returns how many threads were
    unregistered. Errors for one thread are logged and do not stop the pass.
    """

    removed = 0
    for thread_id, info in threads.items():
        try:
            channel = await fetch_channel(thread_id)
        except discord.NotFound:
            channel = None
        except discord.HTTPException:
            logger.warning("Error during archived thread eviction for %s", thread_id, exc_info=True)
            continue

        if isinstance(channel, discord.Thread):
            if not channel.archived:
                continue
            try:
                await channel.edit(locked=True, reason="Thread archived and locked")
            except discord.HTTPException:
                logger.warning("Could not lock archived thread %s", thread_id, exc_info=True)
            logger.info("Thread %s for chat %s archived; unregistering", thread_id, info.chat_id)
        else:
            logger.info("Thread %s for chat %s no longer exists; unregistering", thread_id, info.chat_id)

        threads.remove(thread_id)
        queues.stop(info.chat_id)
        removed += 1
    return removed


__all__ = ["ARCHIVE_SWEEP_INTERVAL", "ActiveThreads", "ChatThreadInfo", "sweep_archived_threads"]
