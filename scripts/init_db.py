"""
Create the sync tables (entry tables, sync_runs, sync_leases)
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import create_tables, database_label, dispose_engine, engine
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def init_database(drop_first: bool = False):
    logger.info(f"Initializing {database_label()}")
    try:
        tables = await create_tables(engine, drop_first=drop_first)
    finally:
        await dispose_engine()
    logger.info(f"Tables ready: {', '.join(tables)}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the sync schema")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first (local use only)")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(drop_first=args.drop))
