"""
Tomato bot: nearby restaurants, cart, checkout and order tracking in Telegram.

Run with `tomato-bot` or `python main.py`. Long polling only.
"""
import asyncio
import logging
import sys

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand

from bot import router
from config import settings
from services import sessions
from utils.http_client import http_client

logger = logging.getLogger(__name__)

BOT_COMMANDS = [
    BotCommand(command="start", description="Main menu"),
    BotCommand(command="restaurants", description="Find restaurants"),
    BotCommand(command="cart", description="Show cart"),
    BotCommand(command="orders", description="Track orders"),
    BotCommand(command="cancel", description="Close the current view"),
    BotCommand(command="help", description="How to use the bot"),
]


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # aiohttp access/client logs are too chatty at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


async def on_startup(bot: Bot) -> None:
    me = await bot.get_me()
    await bot.set_my_commands(BOT_COMMANDS)
    logger.info(f"Started as @{me.username}, backend {settings.backend_base_url}")


async def on_shutdown(bot: Bot) -> None:
    """Stop pollers before the HTTP session they use goes away."""
    logger.info("Shutting down...")
    await sessions.close_all()
    await http_client.close()
    logger.info("Cleanup complete")


def create_dispatcher() -> Dispatcher:
    dp = Dispatcher()
    dp.include_router(router)
    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)
    return dp


async def main() -> None:
    bot = Bot(
        token=settings.telegram_bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.MARKDOWN),
    )
    dp = create_dispatcher()

    try:
        await dp.start_polling(
            bot,
            allowed_updates=["message", "callback_query"],
            drop_pending_updates=True,
        )
    finally:
        await bot.session.close()


def run() -> None:
    """Console script entry point."""
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
