"""
Tool round-trip: run the requested tools, then ask the model once more.

The follow-up call is made with tools disabled and its tool calls, if any, are
ignored, so a round-trip never recurses.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI

from chat_thyme.clients.oai import ModelOptions
from chat_thyme.response import model as model_service
from chat_thyme.response.outcome import ResponseOutcome, ToolCallsRequested, classify_response
from chat_thyme.response.retry import RetryPolicy

from . import ToolContext, ToolExecutionError, get_tool_entry
from .executor import execute_tool

logger = logging.getLogger(__name__)

SEARCH_FAILED = {"error": "Search failed", "results": []}


def _retry_tool_error(exc: BaseException) -> bool:
    return not isinstance(exc, ToolExecutionError) or exc.retryable


SEARCH_RETRY = RetryPolicy(name="Search", retryable=_retry_tool_error)


@dataclass(slots=True)
class ToolRoundTrip:
    """Everything a tool round-trip added to the conversation."""

    tool_messages: list[dict[str, Any]] = field(default_factory=list)
    outcome: ResponseOutcome | None = None
    created: int | None = None


def tool_message(tool_call_id: str, name: str, response: Any) -> dict[str, Any]:
    """Build the ``tool`` message carrying ``response`` back to the model."""
    return {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "content": [
            {
                "type": "text",
                "text": json.dumps({"name": name, "response": response}, ensure_ascii=False),
            }
        ],
    }


async def run_tool_call(
    call: dict[str, Any], *, context: ToolContext, retry_policy: RetryPolicy = SEARCH_RETRY
) -> dict[str, Any] | None:
    """
    Execute one tool call and return its ``tool`` message.

    Returns ``None`` for tools that are not registered. A call that still
    fails after its retries yields the in-band failure payload instead of
    raising.
    """

    function = call.get("function") or {}
    name = function.get("name")
    if get_tool_entry(name) is None:
        logger.warning("Unknown tool call: %s", name)
        return None

    logger.info("Tool call %s(%s)", name, function.get("arguments"))
    try:
        async for attempt in retry_policy.retrying():
            with attempt:
                result = await execute_tool(name, function.get("arguments") or "", context=context)
        response = result.response
    except ToolExecutionError as exc:
        logger.error("%s failed after all retries: %s", name, exc)
        response = SEARCH_FAILED
    return tool_message(call.get("id"), name, response)


async def invoke_tool_calls(
    request: ToolCallsRequested,
    *,
    messages: list[dict[str, Any]],
    context: ToolContext,
    client: AsyncOpenAI,
    model: str,
    options: ModelOptions | None = None,
    search_retry: RetryPolicy = SEARCH_RETRY,
    model_retry: RetryPolicy = model_service.MODEL_RETRY,
) -> ToolRoundTrip:
    """
    Answer ``request`` and return the follow-up outcome.

    ``messages`` must already end with ``request.message``; the tool messages
    are appended to it in call order before the follow-up model call.
    """

    trip = ToolRoundTrip()
    for call in request.tool_calls:
        msg = await run_tool_call(call, context=context, retry_policy=search_retry)
        if msg is None:
            continue
        messages.append(msg)
        trip.tool_messages.append(msg)

    resp = await model_service.chat_with_model(
        client,
        model=model,
        messages=messages,
        use_tools=False,
        options=options,
        retry_policy=model_retry,
        rollback=False,
    )
    trip.outcome = classify_response(getattr(resp, "choices", None), allow_tool_calls=False)
    trip.created = getattr(resp, "created", None)
    return trip


__all__ = ["SEARCH_FAILED", "SEARCH_RETRY", "ToolRoundTrip", "invoke_tool_calls", "run_tool_call", "tool_message"]
