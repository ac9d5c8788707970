"""Main entry point for lpbot.

Initializes logging in two phases (defaults then config-driven), builds
every enabled module before connecting, then runs the Discord client
until SIGTERM/SIGINT and closes the modules in reverse build order.

Key functions:
    main: Async entry point.
    run: Synchronous wrapper for the ``lpbot`` console script.
"""

import asyncio
import signal
import sys

import structlog

from . import __version__
from .exceptions import LPBotError
from .logging_config import setup_logging


async def main() -> int:
    """Main async entry point. Returns the process exit status."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    logger = structlog.get_logger("lpbot.bot")

    logger.info("lpbot_starting", version=__version__)

    # Imported here so that logging is configured first
    from .bot import LPBot
    from .config import get_config
    from .modules import build_state

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config
    setup_logging(config)

    try:
        token = config.require("discord_token")
        state = await build_state(config)
    except LPBotError as e:
        logger.error("startup_failed", error=str(e), error_type=type(e).__name__)
        return 1

    bot = LPBot(state, config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: only SIGINT through signal.signal
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    status = 0
    bot_task = asyncio.create_task(bot.start(token))
    shutdown_task = asyncio.create_task(shutdown_event.wait())
    try:
        done, _ = await asyncio.wait(
            {bot_task, shutdown_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if bot_task in done and bot_task.exception() is not None:
            e = bot_task.exception()
            logger.error("bot_error", error=str(e), error_type=type(e).__name__)
            status = 1
    finally:
        shutdown_task.cancel()
        await bot.close()
        if not bot_task.done():
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass
        await state.modules.close_all()
        logger.info("lpbot_stopped")
    return status


def run():
    """Synchronous entry point for the ``lpbot`` console script."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
