"""Lunar daemon entry point: scheduler, dashboard and (optionally) Telegram."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal

from lunar.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str | None = None) -> None:
    """Console logging at the configured level, plus LOG_FILE when set."""
    logging.basicConfig(
        format=LOG_FORMAT,
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
    )
    if settings.log_file:
        handler = logging.FileHandler(settings.log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
    # The Telegram client logs every poll at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def serve() -> None:
    """Run until SIGINT/SIGTERM."""
    from lunar.dashboard.server import DashboardServer
    from lunar.runtime import create_runtime

    runtime = create_runtime()
    await runtime.start()

    dashboard = DashboardServer(runtime)
    await dashboard.start()

    telegram_app = None
    if settings.telegram_bot_token:
        from lunar.bot.telegram.app import create_app

        allowed = settings.get_allowed_chat_ids()
        if not allowed:
            logger.warning("ALLOWED_CHAT_IDS is empty — bot will reject all messages")
        else:
            logger.info("Allowed chat IDs: %s", allowed)

        telegram_app = create_app(runtime)
        await telegram_app.initialize()
        await telegram_app.start()
        await telegram_app.updater.start_polling()
        logger.info("Telegram bot polling")
    else:
        logger.info("TELEGRAM_BOT_TOKEN not set — Telegram disabled")

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        await stop.wait()
    finally:
        logger.info("Shutting down")
        if telegram_app is not None:
            await telegram_app.updater.stop()
            await telegram_app.stop()
            await telegram_app.shutdown()
        await dashboard.stop()
        await runtime.stop()


def main() -> None:
    configure_logging()
    logger.info("Starting Lunar with model %s...", settings.default_chat_model)
    asyncio.run(serve())


if __name__ == "__main__":
    main()
