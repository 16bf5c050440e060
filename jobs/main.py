"""
Sync worker entry point.

Starts the chain core, the periodic task scheduler and the health check
server, then waits for SIGINT/SIGTERM and shuts everything down in reverse
order.
"""

import asyncio
import signal
import sys

from loguru import logger

from jobs.health import start_health_server, stop_health_server
from jobs.initialization.logging import setup_logging
from jobs.scheduler import create_scheduler
from memberchain.config.database import create_engine, create_session_maker, init_models
from memberchain.config.settings import settings
from memberchain.services.chain_core import init_chain_core, reset_chain_core


async def main() -> None:
    """Initialize and run the sync worker."""
    setup_logging(settings)

    engine = create_engine(settings.database_url, echo=settings.database_echo)
    if settings.environment != "production":
        await init_models(engine)

    core = init_chain_core(settings, create_session_maker(engine))
    await core.start()

    scheduler = create_scheduler(settings)
    scheduler.start()
    logger.success("Scheduler started")

    runner = await start_health_server(
        scheduler,
        core,
        host=settings.health_check_host,
        port=settings.health_check_port,
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down sync worker...")
        scheduler.shutdown(wait=False)
        await stop_health_server(runner)
        reset_chain_core()
        await engine.dispose()
        logger.info("Sync worker stopped")


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Sync worker stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Sync worker crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
