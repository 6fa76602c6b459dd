from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from chat_thyme.chat_queue import InboundTurn, TurnProcessor

if TYPE_CHECKING:
    from chat_thyme.response.orchestrator import ResponseOrchestrator

logger = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """
    Split ``text`` into chunks of at most ``limit`` characters.

    Chunks break at the last whitespace inside the window; a run with no
    whitespace is cut hard at ``limit``.
    """

    chunks: list[str] = []
    while len(text) > limit:
        window = text[:limit]
        cut = max(window.rfind(" "), window.rfind("\n"))
        if cut <= 0:
            chunks.append(window)
            text = text[limit:]
        else:
            chunks.append(window[:cut])
            text = text[cut + 1 :]
    if text:
        chunks.append(text)
    return [chunk for chunk in chunks if chunk.strip()]


def make_turn_processor(orchestrator: "ResponseOrchestrator") -> TurnProcessor:
    """Bind ``orchestrator`` into the callback the chat queues run per turn."""

    async def process_turn(turn: InboundTurn) -> None:
        message: discord.Message = turn.source
        async with message.channel.typing():
            reply = await orchestrator.process_user_message(
                turn.owner_id, turn.chat_id, turn.content, turn.timestamp, turn.options
            )
        for chunk in split_message(reply):
            await message.reply(chunk)

    return process_turn


async def report_failure(turn: InboundTurn, exc: Exception) -> None:
    """Tell the user their message could not be answered."""
    await turn.source.reply(f"Sorry, I encountered an error while processing your request: {exc}.")


async def handle(client: discord.Client, message: discord.Message):
    """Queue messages sent by a chat's owner inside its thread."""

    if message.author.bot:
        return

    services = getattr(client, "services", None)
    if services is None:
        return

    info = services.threads.get(message.channel.id)
    if info is None:
        return
    if str(message.author.id) != info.owner_id:
        logger.debug("Ignoring message from %s in chat %s owned by %s", message.author.id, info.chat_id, info.owner_id)
        return

    entry = services.queues.enqueue(
        InboundTurn(
            chat_id=info.chat_id,
            owner_id=info.owner_id,
            content=message.content,
            timestamp=message.created_at,
            options=info.options,
            source=message,
        )
    )
    logger.debug("Queued message %s for chat %s. Current queue size: %d", message.id, info.chat_id, len(entry.pending))
