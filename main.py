import asyncio
import logging

import bot
from config import LOG_FILE, LOG_LEVEL


def setup_logging():
    handlers = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def main():
    """Run the Telegram bot until interrupted."""
    logger = logging.getLogger(__name__)
    bot_task = asyncio.create_task(bot.run_telegram_bot())

    try:
        await asyncio.gather(bot_task)
    except Exception:
        logger.exception("Exception in bot task")
    finally:
        if bot.app:
            await bot.app.shutdown()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logging.getLogger(__name__).info("Bot stopped.")
