"""Example bot — echoes text messages and answers ``/start``.

Run with ``python main.py`` after putting ``BOT_TOKEN`` in ``.env``.
"""

import asyncio

from bot import Dispatcher, HandlerRegistry, Polling
from config import (
    ALLOWED_UPDATES,
    API_BASE_URL,
    BOT_TOKEN,
    LAST_N_UPDATES,
    POLL_INTERVAL,
    POLL_LIMIT,
    POLL_TIMEOUT,
    REQUEST_TIMEOUT,
)
from core.logger import TgwireLogger
from sdk import Client, PollingSetupError

logger = TgwireLogger.get_logger()

registry = HandlerRegistry()


@registry.command("start", description="Say hello")
async def handle_start(update) -> None:
    name = update.message.from_field.first_name if update.message.from_field else "there"
    await update.send_message(f"Hello, {name}! Send me any text and I will echo it back.")


@registry.on("text")
async def handle_text(update) -> None:
    await update.send_message_in_reply(update.text)


@registry.on("data_callback")
async def handle_button(update) -> None:
    await update.notify("Pressed")


async def main() -> None:
    if not BOT_TOKEN:
        raise EnvironmentError("BOT_TOKEN environment variable is not set or is empty.")

    client = Client(BOT_TOKEN, base_url=API_BASE_URL)
    polling = Polling(
        client,
        Dispatcher(registry),
        limit=POLL_LIMIT,
        timeout=POLL_TIMEOUT,
        allowed_updates=ALLOWED_UPDATES,
        poll_interval=POLL_INTERVAL,
        request_timeout=REQUEST_TIMEOUT,
        last_n_updates=LAST_N_UPDATES,
    )

    logger.info("tgwire example bot is starting")
    try:
        await polling.start()
    except PollingSetupError as exc:
        logger.error("Polling set-up failed", extra={"stage": exc.stage, "timed_out": exc.timed_out})
        raise
    finally:
        TgwireLogger().cleanup()


if __name__ == "__main__":
    asyncio.run(main())
