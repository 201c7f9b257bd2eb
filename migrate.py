"""Database setup script - creates the practice engine tables.

Reads DATABASE_URL from the environment or .env (SQLite by default) and
creates every table that does not exist yet.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from dotenv import load_dotenv

load_dotenv()

from src.shared.config import get_settings
from src.shared.database import Base, check_db_health, init_db, shutdown
from src.shared.logging import setup_logging

logger = logging.getLogger("migrate")


async def run_migration() -> bool:
    """Create the engine tables."""
    settings = get_settings()
    logger.info(f"Connecting to: {settings.database_url[:50]}...")

    if not await check_db_health():
        logger.error("Database is not reachable")
        return False

    try:
        await init_db()
    except Exception as e:
        logger.error(f"Failed to create tables: {e}")
        return False
    finally:
        await shutdown()

    for table in sorted(Base.metadata.tables):
        logger.info(f"  - {table}")
    logger.info("Migration complete")
    return True


if __name__ == "__main__":
    setup_logging()
    success = asyncio.run(run_migration())
    sys.exit(0 if success else 1)
