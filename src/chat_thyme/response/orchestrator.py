"""
Turn one user message into one reply.

The orchestrator borrows the owner's database from the connection cache,
replays the stored history, calls the model, resolves tool calls and finally
persists the whole turn in one transaction. Nothing is written when any step
fails, so the store only ever holds complete turns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from openai import AsyncOpenAI

from chat_thyme.clients.oai import ModelOptions
from chat_thyme.memory.cache import UserDbCache
from chat_thyme.memory.sql.repositories import StoredMessage, build_history
from chat_thyme.response import model as model_service
from chat_thyme.response.outcome import ToolCallsRequested, classify_response, format_reply
from chat_thyme.response.retry import RetryPolicy
from chat_thyme.tools import ToolContext
from chat_thyme.tools.invoker import SEARCH_RETRY, invoke_tool_calls

logger = logging.getLogger(__name__)


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _created_at(created: Any, not_before: datetime) -> datetime:
    """Model ``created`` seconds as a datetime, never earlier than ``not_before``."""
    try:
        ts = datetime.fromtimestamp(int(created), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return not_before
    return max(ts, not_before)


@dataclass(slots=True)
class _TurnBuffer:
    """Rows produced by one turn, written together once the reply is known."""

    chat_id: str
    rows: list[StoredMessage] = field(default_factory=list)

    def add(self, role: str, content: Any, timestamp: datetime, **extra: Any) -> None:
        self.rows.append(StoredMessage(chat_id=self.chat_id, role=role, content=content, timestamp=timestamp, **extra))


class ResponseOrchestrator:
    """Runs the request/response cycle for one conversation turn."""

    def __init__(
        self,
        db_cache: UserDbCache,
        client: AsyncOpenAI,
        *,
        model: str,
        system_prompt: str,
        use_tools: bool = False,
        tool_context: ToolContext | None = None,
        model_retry: RetryPolicy = model_service.MODEL_RETRY,
        search_retry: RetryPolicy = SEARCH_RETRY,
    ) -> None:
        self.db_cache = db_cache
        self.client = client
        self.model = model
        self.system_prompt = system_prompt
        self.use_tools = use_tools
        self.tool_context = tool_context
        self.model_retry = model_retry
        self.search_retry = search_retry

    async def process_user_message(
        self,
        owner_id: str,
        chat_id: str,
        content: str,
        timestamp: datetime,
        options: ModelOptions | None = None,
    ) -> str:
        """
        Produce the reply to ``content`` and store the turn.

        Errors are logged and re-raised; the owner's database reference is
        released on every path.
        """

        try:
            async with self.db_cache.borrow(owner_id) as db:
                repo = db.messages
                stored = await repo.fetch_messages(chat_id)
                messages = build_history(stored, self.system_prompt)
                logger.debug("Loaded %d history messages for chat %s", len(stored), chat_id)

                # Turns queued while the previous reply was pending must sort after it.
                user_ts = _as_utc(timestamp)
                if stored:
                    user_ts = max(user_ts, stored[-1].timestamp)
                messages.append({"role": "user", "content": content})
                turn = _TurnBuffer(chat_id=chat_id)
                turn.add("user", content, user_ts)

                resp = await model_service.chat_with_model(
                    self.client,
                    model=self.model,
                    messages=messages,
                    use_tools=self.use_tools,
                    options=options,
                    retry_policy=self.model_retry,
                )
                reply_ts = _created_at(getattr(resp, "created", None), user_ts)
                outcome = classify_response(getattr(resp, "choices", None))

                if isinstance(outcome, ToolCallsRequested) and self.tool_context is not None:
                    messages.append(outcome.message)
                    turn.add(
                        "assistant",
                        outcome.message["content"],
                        reply_ts,
                        tool_calls=outcome.tool_calls,
                    )
                    trip = await invoke_tool_calls(
                        outcome,
                        messages=messages,
                        context=self.tool_context,
                        client=self.client,
                        model=self.model,
                        options=options,
                        search_retry=self.search_retry,
                        model_retry=self.model_retry,
                    )
                    for msg in trip.tool_messages:
                        turn.add("tool", msg["content"], reply_ts, tool_call_id=msg["tool_call_id"])
                    outcome = trip.outcome
                    reply_ts = _created_at(trip.created, reply_ts)
                elif isinstance(outcome, ToolCallsRequested):
                    logger.warning("Model requested tools for chat %s but no tool clients are configured", chat_id)

                reply = format_reply(outcome)
                turn.add("assistant", reply, reply_ts)
                await repo.append_messages(turn.rows)
        except Exception:
            logger.exception("Error processing user message for %s in chat %s", owner_id, chat_id)
            raise

        return reply


__all__ = ["ResponseOrchestrator"]
