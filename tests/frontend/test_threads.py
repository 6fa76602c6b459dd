import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from chat_thyme.clients.oai import ModelOptions
from chat_thyme.event_hooks import ready_hook
from chat_thyme.threads import ActiveThreads, ChatThreadInfo, sweep_archived_threads


def _thread(archived: bool):
    thread = MagicMock(spec=discord.Thread)
    thread.archived = archived
    thread.edit = AsyncMock()
    return thread


def _info(chat_id):
    return ChatThreadInfo(chat_id=chat_id, owner_id="1", options=ModelOptions())


def test_sweep_unregisters_archived_and_missing_threads():
    threads = ActiveThreads()
    threads.register(1, _info("open-chat"))
    threads.register(2, _info("archived-chat"))
    threads.register(3, _info("deleted-chat"))
    threads.register(4, _info("not-a-thread"))

    archived = _thread(archived=True)
    channels = {1: _thread(archived=False), 2: archived, 4: SimpleNamespace(id=4)}

    async def fetch_channel(channel_id):
        if channel_id not in channels:
            raise discord.NotFound(MagicMock(status=404, reason="Not Found"), "Unknown Channel")
        return channels[channel_id]

    queues = MagicMock()
    removed = asyncio.run(sweep_archived_threads(fetch_channel, threads, queues))

    assert removed == 3
    assert 1 in threads and len(threads) == 1
    archived.edit.assert_awaited_once_with(locked=True, reason="Thread archived and locked")
    stopped = {call.args[0] for call in queues.stop.call_args_list}
    assert stopped == {"archived-chat", "deleted-chat", "not-a-thread"}


def test_sweep_keeps_threads_on_transient_errors():
    threads = ActiveThreads()
    threads.register(1, _info("flaky"))

    async def fetch_channel(channel_id):
        raise discord.HTTPException(MagicMock(status=500, reason="Server Error"), "oops")

    queues = MagicMock()
    assert asyncio.run(sweep_archived_threads(fetch_channel, threads, queues)) == 0
    assert 1 in threads
    queues.stop.assert_not_called()


def test_ready_hook_logs_login_and_starts_sweep(caplog):
    services = SimpleNamespace(start_thread_sweep=AsyncMock())
    client = SimpleNamespace(user=SimpleNamespace(name="thyme", id=42), services=services, fetch_channel=AsyncMock())

    with caplog.at_level("INFO", logger="chat_thyme.event_hooks.ready_hook"):
        asyncio.run(ready_hook.handle(client))

    assert "Logged in as thyme (ID: 42)" in caplog.text
    services.start_thread_sweep.assert_awaited_once_with(client.fetch_channel)
