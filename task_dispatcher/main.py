import asyncio
import signal

import structlog

from .config import settings
from .infrastructure.logging import configure_logging
from .service import build_service

configure_logging(settings.service_name)

logger = structlog.get_logger()


async def main() -> None:
    """Main entry point for the dispatcher service."""
    logger.info("Starting dispatcher", service=settings.service_name)

    service = build_service(settings)
    stopping = asyncio.Event()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stopping.set)

    await service.start(settings.schedules)

    # Run an initial tick immediately
    await service.tick_job()

    try:
        await stopping.wait()
    except asyncio.CancelledError:
        logger.info("Dispatcher cancelled")
    finally:
        await service.stop()


if __name__ == "__main__":
    asyncio.run(main())
