import asyncio
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from chat_thyme.chat_queue import ChatQueues, InboundTurn
from chat_thyme.memory.cache import UserDbCache
from chat_thyme.response.orchestrator import ResponseOrchestrator

TS = datetime(2024, 5, 1, tzinfo=timezone.utc)


def _turn(chat_id: str, content: str) -> InboundTurn:
    return InboundTurn(chat_id=chat_id, owner_id="u1", content=content, timestamp=TS)


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.mark.asyncio
async def test_turns_of_one_chat_run_in_order_without_overlap():
    events: list[str] = []

    async def process(turn):
        events.append(f"start {turn.content}")
        await asyncio.sleep(0.01)
        events.append(f"end {turn.content}")

    async def on_error(turn, exc):
        raise AssertionError("no failures expected")

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    for content in ("one", "two", "three"):
        queues.enqueue(_turn("c1", content))

    await _wait_for(lambda: len(events) == 6)
    assert events == ["start one", "end one", "start two", "end two", "start three", "end three"]
    await queues.stop_all()


@pytest.mark.asyncio
async def test_one_worker_per_chat():
    async def process(turn):
        await asyncio.sleep(0)

    async def on_error(turn, exc):
        pass

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    first = queues.enqueue(_turn("c1", "a"))
    second = queues.enqueue(_turn("c1", "b"))
    other = queues.enqueue(_turn("c2", "c"))

    assert first is second
    assert first.worker is not other.worker
    await queues.stop_all()


@pytest.mark.asyncio
async def test_different_chats_run_concurrently():
    release = asyncio.Event()
    started: set[str] = set()

    async def process(turn):
        started.add(turn.chat_id)
        await release.wait()

    async def on_error(turn, exc):
        pass

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    queues.enqueue(_turn("c1", "a"))
    queues.enqueue(_turn("c2", "b"))

    await _wait_for(lambda: started == {"c1", "c2"})
    release.set()
    await queues.stop_all()


@pytest.mark.asyncio
async def test_failures_are_reported_and_the_worker_keeps_going():
    processed: list[str] = []
    reported: list[tuple[str, str]] = []

    async def process(turn):
        if turn.content == "bad":
            raise RuntimeError("model exploded")
        processed.append(turn.content)

    async def on_error(turn, exc):
        reported.append((turn.content, str(exc)))
        if len(reported) == 1:
            raise RuntimeError("reply failed too")

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    for content in ("bad", "ok", "bad", "fine"):
        queues.enqueue(_turn("c1", content))

    await _wait_for(lambda: processed == ["ok", "fine"])
    assert reported == [("bad", "model exploded"), ("bad", "model exploded")]
    assert not queues.entry("c1").worker.done()
    await queues.stop_all()


@pytest.mark.asyncio
async def test_stop_drops_pending_turns_and_ends_the_worker():
    gate = asyncio.Event()
    processed: list[str] = []

    async def process(turn):
        processed.append(turn.content)
        await gate.wait()

    async def on_error(turn, exc):
        pass

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    entry = queues.enqueue(_turn("c1", "first"))
    queues.enqueue(_turn("c1", "second"))
    await _wait_for(lambda: processed == ["first"])

    assert queues.stop("c1") is True
    # Draining: the entry stays until the in-flight turn finishes.
    assert "c1" in queues
    assert queues.stop("c1") is False
    gate.set()

    await asyncio.wait_for(entry.worker, timeout=1)
    assert processed == ["first"]
    await asyncio.sleep(0)
    assert "c1" not in queues
    assert queues.stop("c1") is False


@pytest.mark.asyncio
async def test_enqueue_while_draining_waits_for_the_old_worker():
    gate = asyncio.Event()
    running = 0
    peak = 0
    events: list[str] = []

    async def process(turn):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        events.append(f"start {turn.content}")
        if turn.content == "first":
            await gate.wait()
        events.append(f"end {turn.content}")
        running -= 1

    async def on_error(turn, exc):
        raise AssertionError(exc)

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    old = queues.enqueue(_turn("c1", "first"))
    await _wait_for(lambda: events == ["start first"])

    queues.stop("c1")
    new = queues.enqueue(_turn("c1", "second"))
    assert new is not old
    assert queues.entry("c1") is new

    await asyncio.sleep(0.02)
    assert events == ["start first"]

    gate.set()
    await _wait_for(lambda: events[-1:] == ["end second"])
    assert events == ["start first", "end first", "start second", "end second"]
    assert peak == 1

    await asyncio.wait_for(old.worker, timeout=1)
    assert queues.entry("c1") is new
    await queues.stop_all()
    await asyncio.sleep(0)
    assert "c1" not in queues


@pytest.mark.asyncio
async def test_enqueue_after_stop_starts_a_fresh_worker():
    seen: list[str] = []

    async def process(turn):
        seen.append(turn.content)

    async def on_error(turn, exc):
        pass

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    old = queues.enqueue(_turn("c1", "a"))
    await _wait_for(lambda: seen == ["a"])
    queues.stop("c1")

    new = queues.enqueue(_turn("c1", "b"))
    assert new is not old
    await _wait_for(lambda: seen == ["a", "b"])
    await queues.stop_all()
    assert old.worker.done() and new.worker.done()


@pytest.mark.asyncio
async def test_each_turn_is_persisted_before_the_next_begins(tmp_path):
    observed: list[list[str]] = []

    async def create(**kwargs):
        contents = [m["content"] for m in kwargs["messages"]]
        observed.append(contents)
        message = SimpleNamespace(content=f"re: {contents[-1]}", tool_calls=None, refusal=None)
        return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")], created=0, error=None)

    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=create)
    cache = UserDbCache(tmp_path, 2)
    orch = ResponseOrchestrator(cache, client, model="m", system_prompt="sys")
    replies: list[str] = []

    async def process(turn):
        replies.append(await orch.process_user_message(turn.owner_id, turn.chat_id, turn.content, turn.timestamp))

    async def on_error(turn, exc):
        raise AssertionError(exc)

    queues = ChatQueues(process, on_error, poll_interval=0.001)
    for content in ("one", "two", "three"):
        queues.enqueue(_turn("c1", content))

    await _wait_for(lambda: len(replies) == 3)
    await queues.stop_all()

    assert observed == [
        ["sys", "one"],
        ["sys", "one", "re: one", "two"],
        ["sys", "one", "re: one", "two", "re: two", "three"],
    ]
    await cache.clear()
