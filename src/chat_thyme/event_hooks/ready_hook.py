import logging

import discord

logger = logging.getLogger(__name__)


async def handle(client: discord.Client):
    """Start the archived-thread sweep once the gateway session is ready."""
    logger.info("Logged in as %s (ID: %s)", client.user.name, client.user.id)

    services = getattr(client, "services", None)
    if services is None:
        logger.warning("Client has no chat services attached; skipping thread sweep")
        return
    await services.start_thread_sweep(client.fetch_channel)
