"""Discord bot bootstrap utilities."""

from __future__ import annotations

import logging

import discord
from discord.ext import commands as discord_commands

from chat_thyme import commands as ct_commands
from chat_thyme.config import Config
from chat_thyme.event_hooks import message_hook, ready_hook
from chat_thyme.services import ChatThymeServices

logger = logging.getLogger(__name__)


def build_intents() -> discord.Intents:
    intents = discord.Intents.default()
    intents.guilds = True
    intents.guild_messages = True
    intents.message_content = True
    return intents


class ChatThymeBot(discord_commands.Bot):
    """Discord front-end: slash commands open threads, thread messages get replies."""

    def __init__(self, services: ChatThymeServices) -> None:
        super().__init__(command_prefix=discord_commands.when_mentioned, intents=build_intents())
        self.services = services

    async def setup_hook(self) -> None:
        """Start background services, register slash commands and sync them."""

        await self.services.start()
        await ct_commands.setup(self)

        try:
            synced = await self.tree.sync()
            logger.info("Synced %d application command(s)", len(synced))
        except Exception:
            logger.exception("Failed to sync application commands")

    async def on_ready(self) -> None:
        await ready_hook.handle(self)

    async def on_message(self, message: discord.Message) -> None:
        await message_hook.handle(self, message)

    async def close(self) -> None:
        try:
            await self.services.shutdown()
        finally:
            await super().close()


def run(config: Config) -> None:
    """Build the services and bot for ``config`` and block until it stops."""

    bot = ChatThymeBot(ChatThymeServices.from_config(config))
    try:
        bot.run(config.core.DISCORD_BOT_TOKEN, log_handler=None)
    except discord.LoginFailure as exc:
        logger.error("Login failed: %s", exc)
