import sys
import asyncio
import logging
import threading

from dotenv import load_dotenv
from telegram import Update
from telegram.ext import Application

import bot
import server
from config import BotConfig

logger = logging.getLogger(__name__)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level, logging.INFO),
    )

    # httpx logs every Bot API request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def run_flask_in_background(app, port: int) -> None:
    run_serve = lambda: server.main(app, port)
    threading.Thread(target=run_serve, daemon=True).start()


def run_bot_polling(config: BotConfig) -> None:
    run_flask_in_background(server.create_app(), config.port)

    application = bot.build_application(config)
    application.run_polling(allowed_updates=Update.ALL_TYPES)


async def run_bot_webhook(config: BotConfig) -> None:
    application: Application = bot.build_application(config)
    loop = asyncio.get_running_loop()

    def on_update(payload: dict) -> None:
        # called from a waitress worker thread
        update = Update.de_json(payload, application.bot)
        asyncio.run_coroutine_threadsafe(application.update_queue.put(update), loop)

    async with application:
        await application.post_init(application)
        await application.bot.set_webhook(
            url=f"{config.webhook_url}/webhook",
            secret_token=config.webhook_secret,
            allowed_updates=Update.ALL_TYPES,
        )

        run_flask_in_background(
            server.create_app(on_update, config.webhook_secret), config.port
        )

        await application.start()
        logger.info("Webhook is set to %s/webhook", config.webhook_url)

        try:
            await asyncio.Event().wait()
        finally:
            await application.stop()
            await application.post_shutdown(application)


if __name__ == "__main__":
    # load environment variables
    load_dotenv()

    port = None if len(sys.argv) == 1 else int(sys.argv[1])
    config = BotConfig.from_env(port)

    setup_logging(config.log_level)

    if config.webhook_url:
        asyncio.run(run_bot_webhook(config))
    else:
        run_bot_polling(config)
