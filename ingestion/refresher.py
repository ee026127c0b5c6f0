"""
Refresh jobs over already-reconciled deals.

MetricsRefresher re-fetches the most recent posts of a board, updates the
deal's mutable fields (never its category or identity) and appends one
MetricSnapshot and one RawRecord per post.

SubcategoryRefresher re-runs the gated subcategory classifier over every
deal and writes only the rows whose subcategory changed.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import PipelineConfig
from core.exceptions import ParseFailure, PersistFailure
from ingestion.base import ShopNameResolver, SourceAdapter
from ingestion.fetcher import PageFetcher
from ingestion.loaders.deal_repository import DealRepository, RecentPost
from ingestion.loaders.history import MetricsRecorder, RawArchive
from ingestion.loaders.shop_names import ShopNameMappingResolver
from ingestion.run_tracker import RunTracker
from ingestion.runner import parse_detail
from ingestion.transformers.normalizer import DealNormalizer, strip_shop_prefix
from ingestion.transformers.subcategory import classify_subcategory
from models.base import JobType, RunStatus
from schemas.extracted import ListItem
from schemas.results import (
    FetchSuccess, FetchTarget, ItemOutcome, ItemResult, RefreshStats, SubcategoryStats
)
import logging

logger = logging.getLogger(__name__)


class MetricsRefresher:
    """Refresh-metrics stage for one board"""

    def __init__(
        self,
        db_session: AsyncSession,
        config: PipelineConfig,
        fetcher: PageFetcher,
        shop_name_resolver: Optional[ShopNameResolver] = None,
    ):
        self.db = db_session
        self.config = config
        self.fetcher = fetcher
        self.normalizer = DealNormalizer(base_url=config.desktop_base_url)
        self.deals = DealRepository(db_session)
        self.shop_names = shop_name_resolver or ShopNameMappingResolver(db_session)
        self.metrics = MetricsRecorder(db_session)
        self.archive = RawArchive(db_session)

    async def run(self, adapter: SourceAdapter) -> RefreshStats:
        tracker = RunTracker(self.db, JobType.REFRESH_METRICS, adapter.source)
        await tracker.start()
        stats = RefreshStats()

        try:
            posts = await self.deals.list_recent_posts(adapter.source, self.config.batch_size("refresh"))
            await self.db.commit()
            stats.targets = len(posts)

            if not posts:
                logger.info(f"No posts available for refresh on {adapter.source}")
                await tracker.complete(RunStatus.SUCCESS, stats.model_dump())
                return stats

            report = await self.fetcher.fetch_all(
                [FetchTarget(source_post_id=p.source_post_id, post_url=p.post_url) for p in posts],
                variants_builder=lambda target: adapter.url_variants(target, self.config),
            )
            stats.detail_failures = len(report.failures)

            posts_by_id = {p.source_post_id: p for p in posts}
            for fetched in report.successes:
                stats.record(await self.refresh_post(adapter, posts_by_id.get(fetched.source_post_id), fetched))

        except Exception as e:
            logger.exception("Unexpected error in metrics refresh")
            await self.db.rollback()
            await tracker.complete(RunStatus.FAILED, stats.model_dump(), error_message=str(e))
            raise

        status = RunStatus.SUCCESS
        if stats.detail_failures or stats.parser_failures or stats.persist_failures:
            status = RunStatus.PARTIAL
        await tracker.complete(status, stats.model_dump())
        logger.info(f"Metrics refresh completed for {adapter.source}: {stats.model_dump()}")
        return stats

    async def refresh_post(
        self,
        adapter: SourceAdapter,
        post: Optional[RecentPost],
        fetched: FetchSuccess,
    ) -> ItemResult:
        if post is None:
            return ItemResult(
                source=adapter.source,
                source_post_id=fetched.source_post_id,
                outcome=ItemOutcome.SKIPPED,
            )

        item = ListItem(
            source=adapter.source,
            source_post_id=post.source_post_id,
            post_url=post.post_url,
            title=post.title,
        )
        try:
            detail = parse_detail(adapter, fetched.html, item)
            draft = self.normalizer.normalize(item, detail)
        except ParseFailure as e:
            logger.error(
                f"Parse failed during refresh of {adapter.source}:{post.source_post_id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return ItemResult(
                source=adapter.source,
                source_post_id=post.source_post_id,
                post_url=post.post_url,
                outcome=ItemOutcome.PARSE_FAILED,
                error=e.to_dict(),
            )

        try:
            shop_name = None
            if draft.raw_shop_name:
                shop_name = await self.shop_names.resolve(adapter.source, draft.raw_shop_name)

            fields = {
                "title": draft.title,
                "price": draft.price,
                "shipping_type": draft.shipping_type,
                "sold_out": draft.sold_out,
                "shop_name": shop_name,
            }
            if draft.thumbnail_url:
                fields["thumbnail_url"] = draft.thumbnail_url
            await self.deals.update_deal(post.deal_id, fields)

            await self.metrics.insert_snapshot(
                deal_id=post.deal_id,
                source=adapter.source,
                views=draft.views,
                votes=draft.votes,
                comments=draft.comments,
            )
            await self.archive.append(
                adapter.source,
                post.source_post_id,
                {
                    "detail": detail.model_dump(mode="json"),
                    "fetched_url": fetched.post_url,
                    "refreshed_at": datetime.utcnow().isoformat(),
                },
            )
            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            error = PersistFailure(
                "Failed to persist refreshed metrics",
                context={
                    "source": adapter.source,
                    "source_post_id": post.source_post_id,
                    "deal_id": post.deal_id,
                },
                original_exception=e
            )
            logger.error(
                f"Refresh persist failed for deal {post.deal_id}: {e}",
                extra={"error_context": error.to_dict()}
            )
            return ItemResult(
                source=adapter.source,
                source_post_id=post.source_post_id,
                post_url=post.post_url,
                outcome=ItemOutcome.PERSIST_FAILED,
                deal_id=post.deal_id,
                error=error.to_dict(),
            )

        return ItemResult(
            source=adapter.source,
            source_post_id=post.source_post_id,
            post_url=post.post_url,
            outcome=ItemOutcome.PROCESSED,
            deal_id=post.deal_id,
        )


class SubcategoryRefresher:
    """Keyset scan of all deals re-running the subcategory classifier"""

    def __init__(self, db_session: AsyncSession, config: PipelineConfig):
        self.db = db_session
        self.config = config
        self.deals = DealRepository(db_session)

    async def run(self) -> SubcategoryStats:
        tracker = RunTracker(self.db, JobType.REFRESH_SUBCATEGORY)
        await tracker.start()
        stats = SubcategoryStats()
        after_id = 0
        batch_size = self.config.batch_size("subcategory")

        try:
            while True:
                rows = await self.deals.list_deals_for_subcategory(after_id, batch_size)
                await self.db.commit()
                if not rows:
                    break

                for row in rows:
                    after_id = row.deal_id
                    stats.scanned += 1
                    title = strip_shop_prefix(row.source_title or row.title)
                    subcategory = classify_subcategory(row.category_name, title)
                    if subcategory == row.subcategory:
                        continue

                    await self.deals.update_deal(row.deal_id, {"subcategory": subcategory})
                    await self.db.commit()
                    stats.updated += 1

        except Exception as e:
            logger.exception("Unexpected error in subcategory refresh")
            await self.db.rollback()
            await tracker.complete(RunStatus.FAILED, stats.model_dump(), error_message=str(e))
            raise

        await tracker.complete(RunStatus.SUCCESS, stats.model_dump())
        logger.info(f"Subcategory refresh completed: {stats.model_dump()}")
        return stats
