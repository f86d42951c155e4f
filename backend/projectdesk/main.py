"""
ProjectDesk bootstrap — logging setup, environment check and schema sync.

Run once per deployment (or on a fresh dev database):

    python -m projectdesk.main
"""
import asyncio
import logging
import os

from projectdesk.config import LOG_JSON, LOG_LEVEL
from projectdesk.services.logging_config import setup_logging

setup_logging(level=LOG_LEVEL, json_output=LOG_JSON)
logger = logging.getLogger("projectdesk-main")

REQUIRED_ENV = ["DATABASE_URL", "BLOB_SIGNING_KEY"]
OPTIONAL_ENV = ["BLOB_ROOT", "BLOB_PUBLIC_BASE_URL", "TERMS_PDF_PATH", "COMPANY_NAME"]
CONNECT_ATTEMPTS = 3


def check_env() -> list:
    """Names of required variables that are unset."""
    missing = [var for var in REQUIRED_ENV if not os.getenv(var)]
    for var in missing:
        logger.warning(f"MISSING env var: {var}, running in dev mode")
    for var in OPTIONAL_ENV:
        if not os.getenv(var):
            logger.info(f"Optional env var not set: {var}")
    return missing


async def startup() -> bool:
    """Create missing tables, retrying the connection a few times. Returns success."""
    from sqlalchemy.exc import SQLAlchemyError

    from projectdesk.db import init_db

    for attempt in range(1, CONNECT_ATTEMPTS + 1):
        try:
            logger.info(f"Syncing schema (attempt {attempt}/{CONNECT_ATTEMPTS})...")
            await init_db()
            return True
        except (OSError, SQLAlchemyError) as e:
            logger.error(f"DB connection failed: {e}")
            if attempt < CONNECT_ATTEMPTS:
                await asyncio.sleep(2 * attempt)
    logger.warning(f"Could not connect after {CONNECT_ATTEMPTS} attempts")
    return False


def main() -> int:
    check_env()
    return 0 if asyncio.run(startup()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
