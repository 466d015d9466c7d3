from __future__ import annotations

import asyncio

import uvloop
from aiogram.types import BotCommand, BotCommandScopeAllPrivateChats
from loguru import logger

from giftdraw.bot import bot, dp
from giftdraw.core.config import get_settings
from giftdraw.core.logging import setup_logging
from giftdraw.db import init_engine


USERS_COMMANDS: dict[str, str] = {
    "start": "show help and the current draw",
    "event": "name the event",
    "date": "set the event date",
    "budget": "set the gift budget",
    "add": "add a participant",
    "remove": "remove a participant",
    "list": "list participants",
    "exclusions": "choose forbidden pairs",
    "draw": "draw the pairs",
    "reveal": "show the pairs",
    "template": "show or change the email text",
    "preview": "preview the email",
    "send": "email every giver",
    "new": "start a new draw",
    "save": "save this draw",
    "sessions": "open a saved draw",
}


async def set_default_commands() -> None:
    await bot.set_my_commands(
        [
            BotCommand(command=command, description=description)
            for command, description in USERS_COMMANDS.items()
        ],
        scope=BotCommandScopeAllPrivateChats(),
    )


async def on_startup() -> None:
    logger.info("bot starting...")

    await set_default_commands()

    bot_info = await bot.get_me()

    logger.info("Name     - {name}", name=bot_info.full_name)
    logger.info("Username - @{username}", username=bot_info.username)
    logger.info("ID       - {id}", id=bot_info.id)

    settings = get_settings()
    logger.info("Draw attempts - {attempts}", attempts=settings.draw_attempts)
    logger.info("Mail mode     - {mode}", mode="SMTP" if settings.smtp_host else "demo (logged only)")

    logger.info("bot started")


async def on_shutdown() -> None:
    logger.info("bot stopping...")

    await dp.fsm.storage.close()

    await bot.session.close()

    logger.info("bot stopped")


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_path)
    init_engine(settings.database_url, create_schema=settings.database_url.startswith("sqlite"))

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())


if __name__ == "__main__":
    if not getattr(asyncio, "debug", False):
        uvloop.install()

    asyncio.run(main())
