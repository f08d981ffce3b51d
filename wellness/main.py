"""Maintenance entry point: prepare the schema and re-send pending achievements"""
import logging
import asyncio
from wellness.config import validate_config, LOG_LEVEL
from wellness.db.connection import db
from wellness.db.schema import init_schema
from wellness.services.session_service import SessionService

# Configure logging
logging.basicConfig(
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO)
)

logger = logging.getLogger(__name__)


async def main() -> None:
    """Validate config, create tables, and run one achievement retry sweep"""
    try:
        logger.info("Validating configuration...")
        validate_config()

        logger.info("Initializing database connection pool...")
        await db.init_pool()

        logger.info("Applying schema...")
        await init_schema()

        service = SessionService()
        forwarded = await service.retry_pending_achievements()
        logger.info(f"Re-sent achievements for {forwarded} sessions")

    finally:
        await db.close_pool()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    asyncio.run(main())
