"""
Script to run the sync pipeline once for configured sources
"""

import argparse
import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

import httpx
from core.config import settings
from core.database import async_session_maker, dispose_engine
from core.logging import setup_logging
from models.base import RunStatus, SourceType
from pipeline.runner import SyncRunner
from pipeline.sources import build_fetcher, configured_sources

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run one sync cycle")
    parser.add_argument(
        "--source",
        choices=[s.value for s in SourceType] + ["all"],
        default="all",
        help="Source to sync (default: every enabled, configured source)"
    )
    return parser.parse_args(argv)


async def run_sync(source: str = "all") -> int:
    """Run the selected sources concurrently and print their summaries"""
    if source == "all":
        sources = configured_sources(settings)
    else:
        sources = [SourceType(source)]

    try:
        async with httpx.AsyncClient() as client:
            fetchers = []
            for s in sources:
                fetcher = build_fetcher(s, settings, client)
                if fetcher is None:
                    logger.warning(f"Source {s.value} is not configured. Skipping.")
                    continue
                fetchers.append(fetcher)

            if not fetchers:
                logger.warning("No data sources configured. Skipping sync.")
                return 0

            runner = SyncRunner(
                async_session_maker,
                batch_size=settings.UPSERT_BATCH_SIZE,
                lease_ttl_seconds=settings.LEASE_TTL_SECONDS
            )
            summaries = await asyncio.gather(*(runner.run(f) for f in fetchers))
    finally:
        await dispose_engine()

    print(json.dumps([s.model_dump(mode="json") for s in summaries], indent=2))

    failed = [s for s in summaries if s.status == RunStatus.FAILED.value]
    return 1 if failed else 0


if __name__ == "__main__":
    setup_logging()
    args = parse_args()
    sys.exit(asyncio.run(run_sync(args.source)))
