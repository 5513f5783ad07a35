"""Worker entry point.

Builds the handler context from settings, then runs the scheduler until
SIGTERM/SIGINT (Docker stop). The job in flight at shutdown is allowed to finish.
"""

import asyncio
import logging
import signal

from pulse_core.config.settings import get_settings
from pulse_core.db import close_engine, create_tables, get_session_factory

from pulse_worker.context import build_context
from pulse_worker.registry import build_registry
from pulse_worker.scheduler import Scheduler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


async def main() -> None:
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    await create_tables()
    ctx = build_context(settings, get_session_factory())
    scheduler = Scheduler.from_settings(ctx.store, build_registry(), ctx, settings)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_shutdown(sig: signal.Signals) -> None:
        logger.info("Worker received %s, shutting down...", sig.name)
        shutdown.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_shutdown, sig)

    scheduler.start()
    try:
        await shutdown.wait()
    finally:
        await scheduler.stop()
        await close_engine()
        logger.info("Worker stopped")


if __name__ == "__main__":
    asyncio.run(main())
