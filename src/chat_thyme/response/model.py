"""
Model service calls with retry and rollback.

:func:`chat_with_model` is the only place the orchestrator talks to the model.
Rate limits and server errors are retried; anything else fails on the first
attempt. When the call finally fails the unprocessed user turn is popped off
the in-memory message list so the caller's history matches what was stored.
"""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import AsyncOpenAI

from chat_thyme.clients import oai
from chat_thyme.clients.oai import ModelOptions, ModelServiceError
from chat_thyme.response.retry import RetryPolicy
from chat_thyme.tools import get_registered_tool_specs

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded"


class ModelRequestError(RuntimeError):
    """A model call that failed for good, after retries where they apply."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def status_code_of(exc: BaseException) -> int | None:
    """Return the HTTP-ish status carried by ``exc``, if any."""

    if isinstance(exc, ModelServiceError):
        return exc.status_code
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code
    return None


def is_transient(exc: BaseException) -> bool:
    status = status_code_of(exc)
    return status is not None and (status == 429 or 500 <= status < 600)


MODEL_RETRY = RetryPolicy(name="Chat response", retryable=is_transient)


def tool_schemas() -> list[dict[str, Any]]:
    return [spec.to_openai() for spec in get_registered_tool_specs()]


async def chat_with_model(
    client: AsyncOpenAI,
    *,
    model: str,
    messages: list[dict[str, Any]],
    use_tools: bool,
    options: ModelOptions | None = None,
    retry_policy: RetryPolicy = MODEL_RETRY,
    rollback: bool = True,
):
    """
    Send ``messages`` to ``model`` and return the raw completion.

    :param use_tools: Advertise the registered tools to the model.
    :param rollback: Pop the last entry of ``messages`` if the call fails.
    :raises ModelRequestError: once retries are exhausted or the error is not
        worth retrying. A 429 surfaces as ``"Rate limit exceeded"``; other
        failures keep their original message.
    """

    tools = tool_schemas() if use_tools else None
    try:
        async for attempt in retry_policy.retrying():
            with attempt:
                return await oai.chat_full(client, messages, model=model, tools=tools, options=options)
    except Exception as exc:
        status = status_code_of(exc)
        logger.error("Model request failed (status=%s): %s", status, exc)
        if rollback and messages:
            messages.pop()
        message = RATE_LIMIT_MESSAGE if status == 429 else str(exc)
        raise ModelRequestError(message, status_code=status) from exc


__all__ = [
    "MODEL_RETRY",
    "ModelRequestError",
    "ModelServiceError",
    "chat_with_model",
    "is_transient",
    "status_code_of",
    "tool_schemas",
]
