from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from magenta_epg.config import settings, setup_logging
from magenta_epg.database import close_db, init_db
from magenta_epg.services.scheduler_service import feed_scheduler

from magenta_epg.routers import VERSION, main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting Magenta EPG feed service...")

    try:
        logger.info("Initializing cache database...")
        await init_db()

        if settings.scheduler_enabled:
            logger.info("Starting scheduler...")
            feed_scheduler.start()
        else:
            logger.info("Scheduler disabled, feed regenerates on poll only")

        logger.info("Magenta EPG feed service started successfully")
    except Exception as e:
        logger.error(f"Failed to start Magenta EPG feed service: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Magenta EPG feed service...")

    try:
        feed_scheduler.shutdown()
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    await close_db()
    logger.info("Magenta EPG feed service stopped")


app = FastAPI(
    title="Magenta EPG Feed",
    version=VERSION,
    lifespan=lifespan
)

app.include_router(main_router)
