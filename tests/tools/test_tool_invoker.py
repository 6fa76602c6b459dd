import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from chat_thyme.response.model import MODEL_RETRY
from chat_thyme.response.outcome import ContentResponse, ToolCallsRequested
from chat_thyme.tools import ToolContext, ToolExecutionError, get_registered_tool_specs
from chat_thyme.tools.executor import execute_tool
from chat_thyme.tools.invoker import SEARCH_FAILED, SEARCH_RETRY, invoke_tool_calls, run_tool_call

FAST_SEARCH = SEARCH_RETRY.without_waits()
FAST_MODEL = MODEL_RETRY.without_waits()


class FakeSearch:
    def __init__(self, failures=0, exc=RuntimeError("exa down")):
        self.failures = failures
        self.exc = exc
        self.queries: list[str] = []

    async def search(self, query, *, num_results=3, highlights=True):
        self.queries.append(query)
        assert num_results == 3 and highlights is True
        if self.failures:
            self.failures -= 1
            raise self.exc
        return {"results": [{"title": "Cats", "url": "https://cats.test"}]}


def _call(call_id="call-1", name="exa_search", arguments='{"query": "cats"}'):
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def _decode(tool_msg):
    return json.loads(tool_msg["content"][0]["text"])


def test_registry_exposes_exa_search():
    specs = {spec.name: spec for spec in get_registered_tool_specs()}
    assert "exa_search" in specs
    schema = specs["exa_search"].to_openai()
    assert schema["function"]["parameters"]["required"] == ["query"]
    assert schema["function"]["parameters"]["additionalProperties"] is False


def test_execute_tool_rejects_bad_arguments_without_retry():
    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(execute_tool("exa_search", "{not json", context=ToolContext(search_client=FakeSearch())))
    assert excinfo.value.retryable is False

    with pytest.raises(ToolExecutionError) as excinfo:
        asyncio.run(execute_tool("exa_search", {"query": 3}, context=ToolContext(search_client=FakeSearch())))
    assert excinfo.value.retryable is False


@pytest.mark.asyncio
async def test_search_is_retried_then_succeeds():
    search = FakeSearch(failures=2)

    msg = await run_tool_call(_call(), context=ToolContext(search_client=search), retry_policy=FAST_SEARCH)

    assert search.queries == ["cats"] * 3
    assert msg["role"] == "tool" and msg["tool_call_id"] == "call-1"
    assert _decode(msg) == {
        "name": "exa_search",
        "response": {"results": [{"title": "Cats", "url": "https://cats.test"}]},
    }


@pytest.mark.asyncio
async def test_exhausted_search_degrades_to_failure_payload():
    search = FakeSearch(failures=10)

    msg = await run_tool_call(_call(), context=ToolContext(search_client=search), retry_policy=FAST_SEARCH)

    assert len(search.queries) == 4
    assert _decode(msg) == {"name": "exa_search", "response": SEARCH_FAILED}


@pytest.mark.asyncio
async def test_invalid_arguments_are_not_retried():
    search = FakeSearch()
    msg = await run_tool_call(
        _call(arguments='{"q": "cats"}'), context=ToolContext(search_client=search), retry_policy=FAST_SEARCH
    )
    assert search.queries == []
    assert _decode(msg)["response"] == SEARCH_FAILED


@pytest.mark.asyncio
async def test_unknown_tools_are_skipped():
    msg = await run_tool_call(
        _call(name="launch_rockets"), context=ToolContext(search_client=FakeSearch()), retry_policy=FAST_SEARCH
    )
    assert msg is None


@pytest.mark.asyncio
async def test_round_trip_appends_tool_messages_and_makes_one_follow_up_call():
    final = SimpleNamespace(
        choices=[
            SimpleNamespace(
                message=SimpleNamespace(
                    content="Cats are great",
                    tool_calls=[SimpleNamespace(id="x", function=SimpleNamespace(name="exa_search", arguments="{}"))],
                ),
                finish_reason="stop",
            )
        ],
        created=1_700_000_100,
        error=None,
    )
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=final)

    calls = [_call("call-1"), _call("call-2", name="unknown_tool")]
    request = ToolCallsRequested(message={"role": "assistant", "content": "", "tool_calls": calls}, tool_calls=calls)
    messages = [{"role": "system", "content": "sys"}, {"role": "user", "content": "cats?"}, request.message]

    trip = await invoke_tool_calls(
        request,
        messages=messages,
        context=ToolContext(search_client=FakeSearch()),
        client=client,
        model="m",
        search_retry=FAST_SEARCH,
        model_retry=FAST_MODEL,
    )

    assert [m["tool_call_id"] for m in trip.tool_messages] == ["call-1"]
    assert messages[-1] is trip.tool_messages[0]
    assert trip.outcome == ContentResponse(content="Cats are great")
    assert trip.created == 1_700_000_100

    client.chat.completions.create.assert_awaited_once()
    kwargs = client.chat.completions.create.await_args.kwargs
    assert "tools" not in kwargs
    assert kwargs["messages"] is messages
