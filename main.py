#!/usr/bin/env python

"""
CyberTask - Main Entry Point

Prepares the CyberTask domain service: configures logging, creates the
database schema and prints where the data lives and which REST routes the
service backs.

Usage:
    python main.py

Requirements:
    - Python 3.12+
    - See pyproject.toml for dependencies
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from cybertask.api.responses import route_table
from cybertask.infra.config import get_settings
from cybertask.infra.db import DatabaseEngine, init_db
from cybertask.logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def bootstrap() -> str:
    """Create tables and return the database URL in use"""
    settings = get_settings()
    engine = await init_db(settings.get_db_url())
    url = str(engine.engine.url)
    await DatabaseEngine.reset_instance()
    return url


def main():
    """Main entry point"""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)

    url = asyncio.run(bootstrap())
    logger.info(f"Database ready: {url}")
    for line in route_table():
        logger.info(f"Route {line}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
