import logging
import httpx
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker
from core.config import Settings, settings as default_settings
from core.database import async_session_maker
from models.base import SourceType
from pipeline.runner import SyncRunner
from pipeline.sources import build_fetcher, configured_sources
from schemas.sync import SyncRunSummary

logger = logging.getLogger(__name__)


class SyncScheduler:
    """One cron job per configured source; a source never overlaps itself"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[async_sessionmaker] = None
    ):
        self.settings = settings or default_settings
        self.session_factory = session_factory or async_session_maker
        self.scheduler = AsyncIOScheduler(timezone="UTC")

    async def run_source_job(self, source: str) -> Optional[SyncRunSummary]:
        """Job to run one source pipeline"""
        logger.info(f"Scheduler: starting {source} sync")
        async with httpx.AsyncClient() as client:
            fetcher = build_fetcher(SourceType(source), self.settings, client)
            if fetcher is None:
                logger.warning(f"Scheduler: {source} is not configured")
                return None

            runner = SyncRunner(
                self.session_factory,
                batch_size=self.settings.UPSERT_BATCH_SIZE,
                lease_ttl_seconds=self.settings.LEASE_TTL_SECONDS
            )
            return await runner.run(fetcher)

    def start(self):
        """Start the scheduler"""
        for source in configured_sources(self.settings):
            self.scheduler.add_job(
                self.run_source_job,
                trigger=CronTrigger.from_crontab(self.settings.SYNC_CRON, timezone="UTC"),
                args=[source.value],
                id=f"sync_{source.value}",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
        self.scheduler.start()
        logger.info(f"Sync scheduler started: {[job.id for job in self.scheduler.get_jobs()]}")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")
