import asyncio
import logging

from savings_group.core.config import settings
from savings_group.db.base import init_db
from savings_group.services.scheduler import start_scheduler, stop_scheduler, run_overdue_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger(__name__)


async def serve() -> None:
    """Run the overdue sweep once, then keep the scheduler alive until cancelled."""
    init_db()
    run_overdue_sweep()
    if not settings.SCHEDULER_ENABLED:
        logger.info("Scheduler disabled; exiting after the initial sweep")
        return

    start_scheduler()
    try:
        await asyncio.Event().wait()
    finally:
        stop_scheduler()


def main() -> None:
    logger.info("Starting savings group worker")
    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Savings group worker stopped")


if __name__ == "__main__":
    main()
