"""
Classification of a chat completion into exactly one outcome.

A response is inspected once, here, and turned into one of
:class:`EmptyResponse`, :class:`FilteredResponse`,
:class:`ToolCallsRequested` or :class:`ContentResponse`. Nothing downstream
looks at the raw choices again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence, Union

NO_RESPONSE = "No response was generated"
CONTENT_FILTERED = "Content was filtered"
NO_TOOL_CLIENTS = "Tool calls requested but no tool clients available"
NO_VALID_RESPONSE = "No valid response was generated"


@dataclass(slots=True, frozen=True)
class EmptyResponse:
    reply: str = NO_RESPONSE


@dataclass(slots=True, frozen=True)
class FilteredResponse:
    reply: str = CONTENT_FILTERED


@dataclass(slots=True, frozen=True)
class ToolCallsRequested:
    """The model asked for tools instead of answering."""

    # Assistant message to append to the conversation before the tool results.
    message: dict[str, Any]
    tool_calls: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class ContentResponse:
    content: str
    reasoning: str | None = None


ResponseOutcome = Union[EmptyResponse, FilteredResponse, ToolCallsRequested, ContentResponse]


def _get(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _tool_call_to_dict(call: Any) -> dict[str, Any]:
    function = _get(call, "function")
    return {
        "id": _get(call, "id"),
        "type": "function",
        "function": {
            "name": _get(function, "name"),
            "arguments": _get(function, "arguments") or "",
        },
    }


def extract_message_content(message: Any) -> tuple[str | None, str | None]:
    """Return ``(content, reasoning)``; a refusal replaces both."""

    refusal = _get(message, "refusal")
    if refusal:
        return refusal, None
    reasoning = _get(message, "reasoning_content") or _get(message, "reasoning") or None
    return _get(message, "content"), reasoning


def resolve_split_content(
    content: str | None, reasoning: str | None, later_choices: Sequence[Any]
) -> ContentResponse:
    """
    Some providers send the reasoning and the answer as separate choices.

    When the first choice has no content, take the first later choice that
    does. If there is none the reply is :data:`NO_VALID_RESPONSE`, still
    carrying the reasoning.
    """

    if content:
        return ContentResponse(content=content, reasoning=reasoning)

    for choice in later_choices:
        candidate = _get(_get(choice, "message"), "content")
        if candidate:
            return ContentResponse(content=candidate, reasoning=reasoning)
    return ContentResponse(content=NO_VALID_RESPONSE, reasoning=reasoning)


def classify_response(choices: Sequence[Any] | None, *, allow_tool_calls: bool = True) -> ResponseOutcome:
    """
    Decide which outcome ``choices`` represents.

    ``allow_tool_calls=False`` ignores tool calls entirely, which is how the
    follow-up call after a tool round-trip is classified.
    """

    if not choices:
        return EmptyResponse()

    first = choices[0]
    if _get(first, "finish_reason") == "content_filter":
        return FilteredResponse()

    message = _get(first, "message")
    raw_calls = _get(message, "tool_calls") or []
    if allow_tool_calls and raw_calls:
        calls = [_tool_call_to_dict(call) for call in raw_calls]
        entry = {"role": "assistant", "content": _get(message, "content") or "", "tool_calls": calls}
        return ToolCallsRequested(message=entry, tool_calls=calls)

    content, reasoning = extract_message_content(message)
    return resolve_split_content(content, reasoning, choices[1:])


def format_reply(outcome: ResponseOutcome) -> str:
    """Render an outcome as the text sent back to the user."""

    if isinstance(outcome, ContentResponse):
        if outcome.reasoning:
            return f"<thinking>\n{outcome.reasoning}</thinking>\n{outcome.content}"
        return outcome.content
    if isinstance(outcome, ToolCallsRequested):
        return NO_TOOL_CLIENTS
    return outcome.reply


__all__ = [
    "CONTENT_FILTERED",
    "NO_RESPONSE",
    "NO_TOOL_CLIENTS",
    "NO_VALID_RESPONSE",
    "ContentResponse",
    "EmptyResponse",
    "FilteredResponse",
    "ResponseOutcome",
    "ToolCallsRequested",
    "classify_response",
    "extract_message_content",
    "format_reply",
    "resolve_split_content",
]
