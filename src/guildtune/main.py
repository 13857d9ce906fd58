# guildtune/main.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import nextcord
from nextcord.ext import commands

from .config import Config, log_cookie_status
from .utils import load_all_cogs, safe_reply


def _setup_logging() -> logging.Logger:
    logger = logging.getLogger("guildtune")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()

    log_path = Path(Config.BASE_DIR) / "logs" / "guildtune.log"
    log_path.parent.mkdir(exist_ok=True)

    formatter = logging.Formatter("%(asctime)s | %(name)s | %(levelname)s | %(message)s")

    file_handler = RotatingFileHandler(
        log_path, maxBytes=10 * 1024 * 1024, backupCount=3
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logging.getLogger("nextcord").setLevel(logging.INFO)
    logging.getLogger("mafic").setLevel(logging.INFO)
    return logger


def create_bot() -> commands.Bot:
    logger = logging.getLogger("guildtune")

    intents = nextcord.Intents.default()
    intents.voice_states = True

    bot = commands.Bot(
        command_prefix=Config.PREFIX,
        intents=intents,
        description=f"{Config.BOT_USERNAME} music bot",
        default_guild_ids=[Config.GUILD_ID] if Config.GUILD_ID else None,
    )

    @bot.listen()
    async def on_application_command_error(
        interaction: nextcord.Interaction, error: Exception
    ) -> None:
        logger.exception(
            "slash command error", extra={"command": getattr(interaction, "data", {})}
        )
        await safe_reply(
            interaction,
            "⚠️ Something went wrong while running that command.",
            ephemeral=True,
        )

    @bot.event
    async def on_ready() -> None:
        if bot.user is None:
            return
        logger.info("bot ready user=%s id=%s", bot.user, bot.user.id)

    load_all_cogs(bot)
    return bot


def main() -> None:
    logger = _setup_logging()
    Config.validate()
    log_cookie_status()

    bot = create_bot()
    try:
        bot.run(Config.DISCORD_TOKEN)
    except Exception:
        logger.exception("bot failed to start")
        raise


if __name__ == "__main__":
    main()
