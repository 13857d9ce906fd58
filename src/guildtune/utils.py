# guildtune/utils.py

from __future__ import annotations

import logging
from importlib import resources
from typing import Any, List

import nextcord
from nextcord.ext import commands

logger = logging.getLogger("guildtune.utils")


def load_all_cogs(bot: commands.Bot, package: str = "guildtune.cogs") -> List[str]:
    """Load every ``.py`` module in the given cog package as an extension."""

    try:
        package_files = resources.files(package)
    except (AttributeError, ModuleNotFoundError) as exc:
        raise RuntimeError(f"Cog package '{package}' could not be resolved") from exc

    loaded: List[str] = []
    # Namespace packages may list the same directory more than once.
    for name in sorted({entry.name for entry in package_files.iterdir()}):
        if not name.endswith(".py") or name.startswith("_"):
            continue
        extension = f"{package}.{name[:-3]}"
        try:
            bot.load_extension(extension)
        except commands.ExtensionAlreadyLoaded:
            logger.info("Cog already loaded: %s", extension)
        except Exception as exc:
            logger.error("Failed to load %s: %s", extension, exc)
        else:
            logger.info("Loaded cog: %s", extension)
            loaded.append(extension)
    return loaded


async def safe_reply(
    interaction: nextcord.Interaction, *args: Any, **kwargs: Any
) -> nextcord.Message:
    """Send a response without risking double acknowledgements."""

    responder = getattr(interaction, "response", None)
    followup = getattr(interaction, "followup", None)

    is_done_callable = getattr(responder, "is_done", None)
    is_done = False
    if callable(is_done_callable):
        is_done = bool(is_done_callable())
    elif is_done_callable is not None:
        is_done = bool(is_done_callable)

    if (is_done or is_done_callable is None) and followup:
        return await followup.send(*args, **kwargs)

    if responder and hasattr(responder, "send_message") and not is_done:
        return await responder.send_message(*args, **kwargs)

    if followup:
        return await followup.send(*args, **kwargs)

    raise RuntimeError("Interaction cannot send a response")
