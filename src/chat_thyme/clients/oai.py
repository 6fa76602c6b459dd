"""Helpers for talking to an OpenAI-compatible chat completions server"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Sampling parameters the OpenAI SDK accepts as keyword arguments; everything
# else is forwarded verbatim in the request body for servers that support it.
_SDK_PARAMS = frozenset({"frequency_penalty", "max_tokens", "presence_penalty", "temperature", "top_p"})


class ModelServiceError(RuntimeError):
    """An error-shaped body (``{"error": {...}}``) returned by the model server."""

    def __init__(self, message: str, *, status_code: int | None = None, metadata: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.metadata = metadata


@dataclass(slots=True)
class ModelOptions:
    """Per-chat sampling parameters chosen when the chat thread is opened."""

    frequency_penalty: float | None = None
    max_tokens: int | None = None
    min_p: float | None = None
    presence_penalty: float | None = None
    repeat_penalty: float | None = None
    temperature: float | None = None
    top_a: float | None = None
    top_k: float | None = None
    top_p: float | None = None
    include_reasoning: bool = True

    def to_request_kwargs(self) -> dict[str, Any]:
        """Split the set options into SDK keyword arguments and ``extra_body``."""
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if key in _SDK_PARAMS:
                kwargs[key] = value
            else:
                extra[key] = value
        if extra:
            kwargs["extra_body"] = extra
        return kwargs


def build_client(server_url: str, api_key: str) -> AsyncOpenAI:
    """Return an async client bound to ``server_url``."""
    # MODEL_RETRY is the only retry layer.
    return AsyncOpenAI(base_url=server_url, api_key=api_key, max_retries=0)


def _coerce_status(code: Any) -> int | None:
    try:
        return int(code)
    except (TypeError, ValueError):
        return None


def raise_for_error_body(resp: Any) -> None:
    """Raise :class:`ModelServiceError` if ``resp`` carries an ``error`` object."""
    error = getattr(resp, "error", None)
    if error is None and isinstance(resp, dict):
        error = resp.get("error")
    if not error:
        return
    if not isinstance(error, dict):
        error = {"message": str(error)}
    raise ModelServiceError(
        str(error.get("message") or "Model server returned an error"),
        status_code=_coerce_status(error.get("code")),
        metadata=error.get("metadata"),
    )


async def chat_full(
    client: AsyncOpenAI,
    messages: list[dict],
    *,
    model: str,
    tools: list[dict] | None = None,
    options: ModelOptions | None = None,
):
    """Return the raw chat completion response (optionally with tools)."""
    kwargs: dict[str, Any] = {"model": model, "messages": messages}
    if tools:
        kwargs["tools"] = tools
    if options is not None:
        kwargs.update(options.to_request_kwargs())

    resp = await client.chat.completions.create(**kwargs)
    raise_for_error_body(resp)
    return resp


__all__ = ["ModelOptions", "ModelServiceError", "build_client", "chat_full", "raise_for_error_body"]
