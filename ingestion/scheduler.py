import logging
from typing import Callable, List, Optional, Sequence

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import AffiliateConfig, PipelineConfig, Settings, settings
from core.database import build_engine, build_session_maker
from ingestion.affiliate import AffiliateConverter
from ingestion.base import SourceAdapter
from ingestion.fetcher import PageFetcher, PageProvider, PlaywrightPageProvider
from ingestion.refresher import MetricsRefresher, SubcategoryRefresher
from ingestion.runner import CrawlRunner

logger = logging.getLogger(__name__)


class PipelineScheduler:
    """
    Periodic crawl, affiliate and refresh jobs on an AsyncIOScheduler.

    Each job opens its own session and browser, and logs (never raises)
    failures so the next interval still fires. max_instances=1 keeps a slow
    run from overlapping the next one inside this process.
    """

    def __init__(
        self,
        adapters: Sequence[SourceAdapter],
        pipeline_config: PipelineConfig,
        affiliate_config: Optional[AffiliateConfig] = None,
        session_maker: Optional[async_sessionmaker] = None,
        page_provider_factory: Callable[[PipelineConfig], PageProvider] = PlaywrightPageProvider,
        app_settings: Settings = settings,
    ):
        self.scheduler = AsyncIOScheduler()
        self.adapters: List[SourceAdapter] = list(adapters)
        self.pipeline_config = pipeline_config
        self.affiliate_config = affiliate_config
        self.settings = app_settings
        self.page_provider_factory = page_provider_factory

        self.engine = None
        if session_maker is None:
            self.engine = build_engine()
            session_maker = build_session_maker(self.engine)
        self.SessionLocal = session_maker

    async def run_crawl_job(self):
        """Job to crawl every configured board"""
        logger.info("Scheduler: Starting crawl job")
        for adapter in self.adapters:
            try:
                async with self.page_provider_factory(self.pipeline_config) as provider:
                    fetcher = PageFetcher(self.pipeline_config, provider)
                    async with self.SessionLocal() as session:
                        stats = await CrawlRunner(session, self.pipeline_config, fetcher).run(adapter)
                logger.info(f"Scheduler: Crawl finished for {adapter.source}: {stats.summary()}")
            except Exception as e:
                logger.error(f"Scheduler: Crawl job failed for {adapter.source} - {e}")

    async def run_affiliate_job(self):
        """Job to convert pending purchase links"""
        if self.affiliate_config is None:
            return
        logger.info("Scheduler: Starting affiliate job")
        async with self.SessionLocal() as session:
            try:
                await AffiliateConverter(session, self.affiliate_config).run()
            except Exception as e:
                logger.error(f"Scheduler: Affiliate job failed - {e}")

    async def run_refresh_job(self):
        """Job to refresh metrics per board, then subcategories"""
        logger.info("Scheduler: Starting refresh job")
        for adapter in self.adapters:
            try:
                async with self.page_provider_factory(self.pipeline_config) as provider:
                    fetcher = PageFetcher(self.pipeline_config, provider)
                    async with self.SessionLocal() as session:
                        await MetricsRefresher(session, self.pipeline_config, fetcher).run(adapter)
            except Exception as e:
                logger.error(f"Scheduler: Metrics refresh failed for {adapter.source} - {e}")

        async with self.SessionLocal() as session:
            try:
                await SubcategoryRefresher(session, self.pipeline_config).run()
            except Exception as e:
                logger.error(f"Scheduler: Subcategory refresh failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_crawl_job,
            trigger=IntervalTrigger(minutes=self.settings.CRAWL_INTERVAL_MINUTES),
            id="crawl_job",
            max_instances=1,
            replace_existing=True
        )
        if self.affiliate_config is not None:
            self.scheduler.add_job(
                self.run_affiliate_job,
                trigger=IntervalTrigger(minutes=self.settings.AFFILIATE_INTERVAL_MINUTES),
                id="affiliate_job",
                max_instances=1,
                replace_existing=True
            )
        self.scheduler.add_job(
            self.run_refresh_job,
            trigger=IntervalTrigger(minutes=self.settings.REFRESH_INTERVAL_MINUTES),
            id="refresh_job",
            max_instances=1,
            replace_existing=True
        )
        self.scheduler.start()
        logger.info("Pipeline Scheduler started")

    async def stop(self):
        self.scheduler.shutdown()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("Pipeline Scheduler stopped")
