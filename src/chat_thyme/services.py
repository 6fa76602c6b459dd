"""
Long-lived application objects, built once from :class:`~chat_thyme.config.Config`.

The bot owns one :class:`ChatThymeServices`; commands and event hooks reach the
connection cache, the queues and the orchestrator through it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from chat_thyme import maintenance
from chat_thyme.chat_queue import ChatQueues
from chat_thyme.clients import oai
from chat_thyme.clients.exa import ExaSearchClient
from chat_thyme.config import Config
from chat_thyme.event_hooks.message_hook import make_turn_processor, report_failure
from chat_thyme.memory.cache import UserDbCache
from chat_thyme.response.orchestrator import ResponseOrchestrator
from chat_thyme.threads import ARCHIVE_SWEEP_INTERVAL, ActiveThreads, ChannelFetcher, sweep_archived_threads
from chat_thyme.tools import ToolContext

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ChatThymeServices:
    config: Config
    db_cache: UserDbCache
    orchestrator: ResponseOrchestrator
    queues: ChatQueues
    threads: ActiveThreads = field(default_factory=ActiveThreads)
    _thread_sweep: asyncio.Task | None = field(default=None, init=False, repr=False)

    @classmethod
    def from_config(cls, config: Config) -> "ChatThymeServices":
        core = config.core
        db_cache = UserDbCache(config.cache.DB_DIR, config.cache.CACHE_SIZE)

        tool_context = None
        if core.tools_available:
            tool_context = ToolContext(search_client=ExaSearchClient(core.EXA_API_KEY))

        orchestrator = ResponseOrchestrator(
            db_cache,
            oai.build_client(core.SERVER_URL, core.API_KEY),
            model=core.MODEL,
            system_prompt=core.SYSTEM_PROMPT,
            use_tools=core.USE_TOOLS,
            tool_context=tool_context,
        )
        queues = ChatQueues(make_turn_processor(orchestrator), report_failure)
        return cls(config=config, db_cache=db_cache, orchestrator=orchestrator, queues=queues)

    async def start(self) -> None:
        """Start the connection-cache eviction sweep."""
        await self.db_cache.start_eviction_sweep(
            self.config.cache.ttl_seconds, self.config.cache.check_interval_seconds
        )

    async def start_thread_sweep(self, fetch_channel: ChannelFetcher) -> None:
        """Start the archived-thread sweep. Idempotent."""
        if self._thread_sweep is not None and not self._thread_sweep.done():
            return

        async def _sweep() -> None:
            removed = await sweep_archived_threads(fetch_channel, self.threads, self.queues)
            if removed:
                logger.info("Archived-thread sweep removed %d thread(s)", removed)

        self._thread_sweep = await maintenance.startup(_sweep, ARCHIVE_SWEEP_INTERVAL, name="archived-thread-sweep")

    async def shutdown(self) -> None:
        """Stop the workers and sweeps, then close every database."""
        logger.info("Shutting down chat services")
        await self.queues.stop_all()
        task, self._thread_sweep = self._thread_sweep, None
        await maintenance.shutdown(task)
        await self.db_cache.clear()


__all__ = ["ChatThymeServices"]
