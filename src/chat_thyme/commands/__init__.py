"""
Slash command cogs.

Cog modules live in ``commands/handlers`` and mark their class with
:func:`register_cog`; every handler module is imported below so the
decorators run. :func:`setup` attaches the collected cogs to the bot from
``ChatThymeBot.setup_hook``, where ``bot.services`` is already available to
the cog constructors.
"""

from __future__ import annotations

import logging
from importlib import import_module
from pathlib import Path
from pkgutil import iter_modules
from typing import List, Optional, Type

from discord.ext import commands as commands_ext

logger = logging.getLogger(__name__)

_COG_CLASSES: List[Type[commands_ext.Cog]] = []


def register_cog(cls: Optional[Type[commands_ext.Cog]] = None):
    """Decorator registering a Cog class for later attachment to the bot."""

    def _register(cog_cls: Type[commands_ext.Cog]):
        if not issubclass(cog_cls, commands_ext.Cog):
            raise TypeError("register_cog expects a discord.ext.commands.Cog subclass")
        if cog_cls not in _COG_CLASSES:
            _COG_CLASSES.append(cog_cls)
        return cog_cls

    if cls is None:
        return _register
    return _register(cls)


async def setup(bot: commands_ext.Bot) -> list[str]:
    """Attach every registered cog not already on ``bot``; return their names."""

    attached: list[str] = []
    for cog_cls in _COG_CLASSES:
        if bot.get_cog(cog_cls.__name__):
            continue
        await bot.add_cog(cog_cls(bot))
        attached.append(cog_cls.__name__)

    if attached:
        logger.info("Attached command cog(s): %s", ", ".join(attached))
    elif not _COG_CLASSES:
        logger.warning("No command cogs discovered; command tree is empty")
    return attached


def _import_handlers() -> None:
    pkg_path = Path(__file__).resolve().parent / "handlers"
    for _, modname, _ in iter_modules([str(pkg_path)]):
        if not modname.startswith("_"):
            import_module(f"{__name__}.handlers.{modname}")


_import_handlers()


__all__ = [
    "register_cog",
    "setup",
]
