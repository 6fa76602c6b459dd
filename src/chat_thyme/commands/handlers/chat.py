from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from chat_thyme.chat_ids import generate_unique_chat_id
from chat_thyme.clients.oai import ModelOptions
from chat_thyme.response.retry import RetryPolicy
from chat_thyme.threads import ChatThreadInfo

from .. import register_cog

if TYPE_CHECKING:
    from chat_thyme.services import ChatThymeServices

logger = logging.getLogger(__name__)

THREAD_RETRY = RetryPolicy(name="Discord thread creation")
THREAD_NAME_LIMIT = 100
DEFAULT_ARCHIVE_MINUTES = 60

ARCHIVE_CHOICES = [
    app_commands.Choice(name="One Hour", value=60),
    app_commands.Choice(name="One Day", value=1440),
    app_commands.Choice(name="Three Days", value=4320),
    app_commands.Choice(name="One Week", value=10080),
]

OPTION_DESCRIPTIONS = {
    "auto_archive_minutes": "Minutes until thread auto archives",
    "thread_name": "Custom name for the chat thread",
    "frequency_penalty": "The frequency_penalty of the model (0-2)",
    "max_tokens": "Maximum number of tokens to generate per reply",
    "min_p": "The min_p of the model (0 to 1)",
    "presence_penalty": "The presence_penalty of the model (-2 to 2)",
    "repeat_penalty": "The repeat_penalty of the model (0-2)",
    "temperature": "The temperature of the model (0-2)",
    "top_a": "The top_a of the model (0 to 1)",
    "top_k": "The top_k of the model (0-100)",
    "top_p": "The top_p of the model (0-1)",
}

UnitRange = app_commands.Range[float, 0.0, 1.0]
PenaltyRange = app_commands.Range[float, 0.0, 2.0]


def thread_title(chat_id: str, username: str, thread_name: str | None) -> str:
    title = f"({chat_id}) {thread_name}" if thread_name else f"Chat with {username}: {chat_id}"
    return title[:THREAD_NAME_LIMIT]


async def create_chat_thread(
    channel: discord.TextChannel,
    *,
    name: str,
    auto_archive_minutes: int,
    slow_mode: int,
    reason: str,
    retry_policy: RetryPolicy = THREAD_RETRY,
) -> discord.Thread:
    """Create the private thread a chat lives in, retrying transient failures."""

    async for attempt in retry_policy.retrying():
        with attempt:
            thread = await channel.create_thread(
                name=name,
                type=discord.ChannelType.private_thread,
                auto_archive_duration=auto_archive_minutes,
                slowmode_delay=slow_mode,
                reason=reason,
            )
            if thread is None:
                raise RuntimeError("Failed to create Discord thread - no thread returned")
    return thread


@register_cog
class ChatCommands(commands.Cog):
    """Open a model chat in a private thread."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @property
    def services(self) -> "ChatThymeServices":
        return self.bot.services

    @app_commands.command(name="start-chat", description="Start a chat with the LLM.")
    @app_commands.describe(**OPTION_DESCRIPTIONS)
    @app_commands.choices(auto_archive_minutes=ARCHIVE_CHOICES)
    async def start_chat(
        self,
        interaction: discord.Interaction,
        auto_archive_minutes: Optional[app_commands.Choice[int]] = None,
        thread_name: Optional[str] = None,
        frequency_penalty: Optional[PenaltyRange] = None,
        max_tokens: Optional[app_commands.Range[int, 1]] = None,
        min_p: Optional[UnitRange] = None,
        presence_penalty: Optional[app_commands.Range[float, -2.0, 2.0]] = None,
        repeat_penalty: Optional[PenaltyRange] = None,
        temperature: Optional[PenaltyRange] = None,
        top_a: Optional[UnitRange] = None,
        top_k: Optional[app_commands.Range[float, 0.0, 100.0]] = None,
        top_p: Optional[UnitRange] = None,
    ) -> None:
        """Generate a fresh chat id and open a thread for it."""

        await interaction.response.defer(ephemeral=True, thinking=True)
        owner_id = str(interaction.user.id)
        try:
            async with self.services.db_cache.borrow(owner_id) as db:
                chat_id = await generate_unique_chat_id(db.messages)
        except Exception:
            logger.exception("Error checking chat identifier existence for %s", owner_id)
            await interaction.edit_original_response(
                content="An error occurred while checking for existing chat identifiers."
            )
            return

        options = ModelOptions(
            frequency_penalty=frequency_penalty,
            max_tokens=max_tokens,
            min_p=min_p,
            presence_penalty=presence_penalty,
            repeat_penalty=repeat_penalty,
            temperature=temperature,
            top_a=top_a,
            top_k=top_k,
            top_p=top_p,
        )
        await self._open_thread(
            interaction,
            chat_id,
            options,
            auto_archive_minutes=auto_archive_minutes.value if auto_archive_minutes else DEFAULT_ARCHIVE_MINUTES,
            thread_name=thread_name,
            reason=f"New LLM chat requested by {interaction.user.name}",
        )

    @app_commands.command(name="resume-chat", description="Resume a previous chat with the LLM.")
    @app_commands.describe(chat_identifier="The identifier of the chat to resume", **OPTION_DESCRIPTIONS)
    @app_commands.choices(auto_archive_minutes=ARCHIVE_CHOICES)
    async def resume_chat(
        self,
        interaction: discord.Interaction,
        chat_identifier: str,
        auto_archive_minutes: Optional[app_commands.Choice[int]] = None,
        thread_name: Optional[str] = None,
        frequency_penalty: Optional[PenaltyRange] = None,
        max_tokens: Optional[app_commands.Range[int, 1]] = None,
        min_p: Optional[UnitRange] = None,
        presence_penalty: Optional[app_commands.Range[float, -2.0, 2.0]] = None,
        repeat_penalty: Optional[PenaltyRange] = None,
        temperature: Optional[PenaltyRange] = None,
        top_a: Optional[UnitRange] = None,
        top_k: Optional[app_commands.Range[float, 0.0, 100.0]] = None,
        top_p: Optional[UnitRange] = None,
    ) -> None:
        """Reopen an existing chat in a new thread."""

        await interaction.response.defer(ephemeral=True, thinking=True)
        owner_id = str(interaction.user.id)
        chat_id = chat_identifier.strip()
        try:
            async with self.services.db_cache.borrow(owner_id) as db:
                exists = await db.messages.chat_exists(chat_id)
        except Exception:
            logger.exception("Error checking database for %s existence with %s", chat_id, owner_id)
            await interaction.edit_original_response(
                content="An error occurred while checking for existing chat identifiers."
            )
            return

        if not exists:
            logger.warning("No existing messages found for chat %s", chat_id)
            await interaction.edit_original_response(content=f'Chat "{chat_id}" does not exist.')
            return

        options = ModelOptions(
            frequency_penalty=frequency_penalty,
            max_tokens=max_tokens,
            min_p=min_p,
            presence_penalty=presence_penalty,
            repeat_penalty=repeat_penalty,
            temperature=temperature,
            top_a=top_a,
            top_k=top_k,
            top_p=top_p,
        )
        await self._open_thread(
            interaction,
            chat_id,
            options,
            auto_archive_minutes=auto_archive_minutes.value if auto_archive_minutes else DEFAULT_ARCHIVE_MINUTES,
            thread_name=thread_name,
            reason=f"LLM chat resumption requested by {interaction.user.name}",
        )

    async def _open_thread(
        self,
        interaction: discord.Interaction,
        chat_id: str,
        options: ModelOptions,
        *,
        auto_archive_minutes: int,
        thread_name: str | None,
        reason: str,
    ) -> None:
        channel = interaction.channel
        if not isinstance(channel, discord.TextChannel):
            await interaction.edit_original_response(content="Chats can only be started from a server text channel.")
            return

        try:
            thread = await create_chat_thread(
                channel,
                name=thread_title(chat_id, interaction.user.name, thread_name),
                auto_archive_minutes=auto_archive_minutes,
                slow_mode=self.services.config.core.DISCORD_SLOW_MODE_INTERVAL,
                reason=reason,
            )
            await thread.add_user(interaction.user)
        except Exception as exc:
            logger.exception("Error creating Discord thread after retries failed")
            await interaction.edit_original_response(
                content=f"Error creating Discord thread after multiple retries: {exc}"
            )
            return

        self.services.threads.register(
            thread.id, ChatThreadInfo(chat_id=chat_id, owner_id=str(interaction.user.id), options=options)
        )
        await interaction.edit_original_response(content=f"Started a new chat thread: {thread.mention}")
