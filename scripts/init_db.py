import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import Database
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from models.base import Base
# Import all models to ensure they are registered
from models.task_queue import ETLTaskQueue
from models.etl_run import ETLRun
from models.stock import Stock, ChineseStock

logger = logging.getLogger(__name__)


async def init_database(url: str = None):
    logger.info("Connecting to database...")
    async with Database(url or settings.DATABASE_URL) as database:
        async with database.engine.begin() as conn:
            logger.info("Creating tables...")
            # Create all tables defined in models
            await conn.run_sync(Base.metadata.create_all)
            logger.info(f"Tables created successfully: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(init_database())
    except ConfigurationError as e:
        logger.error(f"FATAL: {e.message}")
        sys.exit(1)
