"""
Standalone entry point for the recurring sweep.

Runs the sweep loop without the HTTP surface. In development it runs a single
sweep and exits.
"""

import asyncio
import logging

from recurring_engine.config import get_settings
from recurring_engine.db.config import engine
from recurring_engine.db.init import init_db
from recurring_engine.services.scheduler_driver import SchedulerDriver
from recurring_engine.utils.logger import configure_logging

logger = logging.getLogger(__name__)


async def main():
    """Main entry point for the recurring sweep worker."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting recurring task worker...")

    init_db(engine)
    driver = SchedulerDriver(engine, settings=settings)

    if settings.environment == "development":
        logger.info("Running in development mode: single sweep")
        result = driver.run_sweep()
        logger.info(f"Sweep generated {len(result.generated)} instance(s), {len(result.failed)} failure(s)")
        return

    await driver.start()
    try:
        # Sweep loop runs until the process is stopped
        while True:
            await asyncio.sleep(3600)
    finally:
        await driver.stop()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
