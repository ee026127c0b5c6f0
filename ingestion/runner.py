# ============================================================================
# File: ingestion/runner.py
# Description: Crawl orchestrator (list -> detail fetch -> parse -> reconcile)
# ============================================================================
"""
Crawl Runner - orchestrates one crawl of one board.

This module provides the crawl orchestration with:
- Per-item result values folded into CrawlStats (no item unwinds the batch)
- One database transaction per item (see DealReconciler)
- Category diagnostics and a deduplicated sample of unmapped source categories
- A crawl_runs audit row per invocation
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import PipelineConfig
from core.exceptions import FetchFailure, ParseFailure, PipelineException
from ingestion.base import ShopNameResolver, SourceAdapter, ThumbnailCache
from ingestion.fetcher import PageFetcher
from ingestion.loaders.category_repository import CategoryRepository
from ingestion.reconciler import DealReconciler
from ingestion.run_tracker import RunTracker
from ingestion.transformers.normalizer import DealNormalizer
from models.base import JobType, RunStatus
from schemas.extracted import DetailRecord, ListItem
from schemas.results import CrawlStats, FetchSuccess, FetchTarget, ItemOutcome, ItemResult
import logging

logger = logging.getLogger(__name__)


def parse_detail(adapter: SourceAdapter, html: str, item: ListItem) -> DetailRecord:
    """
    Run the adapter's detail extractor and validate its output.

    Raises:
        ParseFailure: If extraction fails or yields an unexpected shape
    """
    context = {"source": item.source, "source_post_id": item.source_post_id}
    try:
        extracted = adapter.extract_detail(html, item)
        if isinstance(extracted, DetailRecord):
            return extracted
        return DetailRecord.model_validate(extracted)
    except ValidationError as e:
        context["field_errors"] = [err["loc"] for err in e.errors()]
        raise ParseFailure("Detail page has an unexpected shape", context=context, original_exception=e)
    except Exception as e:
        raise ParseFailure("Detail extraction failed", context=context, original_exception=e)


def build_raw_payload(item: Optional[ListItem], detail: DetailRecord, fetched_url: str) -> Dict[str, Any]:
    payload = {
        "detail": detail.model_dump(mode="json"),
        "fetched_url": fetched_url,
        "captured_at": datetime.utcnow().isoformat(),
    }
    if item is not None:
        payload["list"] = item.model_dump(mode="json")
    return payload


class CrawlRunner:
    """
    Crawl orchestrator.

    Responsibilities:
    - Collect and validate the board's list rows
    - Fetch detail pages through the PageFetcher
    - Parse, normalize and reconcile each fetched page
    - Record run counters and the crawl_runs audit row
    """

    def __init__(
        self,
        db_session: AsyncSession,
        config: PipelineConfig,
        fetcher: PageFetcher,
        shop_name_resolver: Optional[ShopNameResolver] = None,
        thumbnail_cache: Optional[ThumbnailCache] = None,
    ):
        self.db = db_session
        self.config = config
        self.fetcher = fetcher
        self.normalizer = DealNormalizer(base_url=config.desktop_base_url)
        self.reconciler = DealReconciler(
            db_session,
            config,
            shop_name_resolver=shop_name_resolver,
            thumbnail_cache=thumbnail_cache,
        )

    async def run(self, adapter: SourceAdapter) -> CrawlStats:
        """
        Run one crawl for a board.

        Returns:
            CrawlStats; soft per-item failures are counted, not raised

        Raises:
            FetchFailure: If the list rows themselves cannot be collected
        """
        tracker = RunTracker(self.db, JobType.CRAWL, adapter.source)
        await tracker.start()
        stats = CrawlStats()

        try:
            # --------------------------------------------------
            # PHASE 1: LIST
            # --------------------------------------------------
            items, invalid_rows = await self._collect_items(adapter)
            stats.parser_failures += invalid_rows
            stats.targets = len(items)
            logger.info(f"Collected {len(items)} list items from {adapter.source}")

            if not items:
                logger.info("No hot-deal items found")
                await tracker.complete(RunStatus.SUCCESS, stats.model_dump())
                return stats

            missing_category = [i for i in items if not (i.source_category_key and i.source_category_name)]
            if missing_category:
                logger.debug(
                    f"{len(missing_category)} list items carry no source category "
                    f"(e.g. {[i.source_post_id for i in missing_category[:5]]})"
                )

            category_count_before = await CategoryRepository(self.db).count_categories()
            # no transaction stays open across the fetch stage
            await self.db.commit()

            # --------------------------------------------------
            # PHASE 2: DETAIL FETCH
            # --------------------------------------------------
            targets = [FetchTarget(source_post_id=i.source_post_id, post_url=i.post_url) for i in items]
            report = await self.fetcher.fetch_all(
                targets,
                variants_builder=lambda target: adapter.url_variants(target, self.config),
            )
            stats.fetched = len(report.successes)
            stats.detail_failures = len(report.failures)

            # --------------------------------------------------
            # PHASE 3: PARSE + RECONCILE (one transaction per item)
            # --------------------------------------------------
            items_by_id = {i.source_post_id: i for i in items}
            mapping_misses: Dict[str, Dict[str, Any]] = {}

            for fetched in report.successes:
                result = await self.process(adapter, items_by_id.get(fetched.source_post_id), fetched)
                stats.record(result)
                self._sample_mapping_miss(result, items_by_id, mapping_misses)

            category_count_after = await CategoryRepository(self.db).count_categories()
            await self.db.commit()
            self._log_summary(adapter.source, stats, mapping_misses, category_count_before, category_count_after)

            status = RunStatus.SUCCESS
            if stats.detail_failures or stats.parser_failures or stats.persist_failures:
                status = RunStatus.PARTIAL
            await tracker.complete(status, stats.model_dump())
            return stats

        except PipelineException as e:
            logger.error(f"Crawl failed: {e.message}", extra={"error_context": e.to_dict()})
            await self.db.rollback()
            await tracker.complete(RunStatus.FAILED, stats.model_dump(), error_message=e.message)
            raise

        except Exception as e:
            logger.exception("Unexpected error in crawl pipeline")
            await self.db.rollback()
            await tracker.complete(RunStatus.FAILED, stats.model_dump(), error_message=str(e))
            raise

    async def process(
        self,
        adapter: SourceAdapter,
        item: Optional[ListItem],
        fetched: FetchSuccess,
    ) -> ItemResult:
        """Parse, normalize and reconcile one fetched page"""
        if item is None:
            logger.warning(f"Skipping {fetched.source_post_id}: no matching list item")
            return ItemResult(
                source=adapter.source,
                source_post_id=fetched.source_post_id,
                post_url=fetched.post_url,
                outcome=ItemOutcome.SKIPPED,
            )

        try:
            detail = parse_detail(adapter, fetched.html, item)
            draft = self.normalizer.normalize(item, detail)
        except ParseFailure as e:
            logger.error(
                f"Parse failed for {item.source}:{item.source_post_id} ({fetched.post_url}): {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return ItemResult(
                source=item.source,
                source_post_id=item.source_post_id,
                post_url=item.post_url,
                outcome=ItemOutcome.PARSE_FAILED,
                error=e.to_dict(),
            )

        return await self.reconciler.reconcile(draft, build_raw_payload(item, detail, fetched.post_url))

    async def _collect_items(self, adapter: SourceAdapter) -> Tuple[List[ListItem], int]:
        """Validated, de-duplicated list rows plus the number of rejected rows"""
        items: List[ListItem] = []
        seen = set()
        invalid = 0

        try:
            async for row in adapter.list_items():
                try:
                    item = row if isinstance(row, ListItem) else ListItem.model_validate(
                        {"source": adapter.source, **row}
                    )
                except ValidationError as e:
                    invalid += 1
                    logger.warning(f"Rejected malformed list row from {adapter.source}: {e.errors()}")
                    continue

                if item.source_post_id in seen:
                    continue
                seen.add(item.source_post_id)
                items.append(item)

        except PipelineException:
            raise
        except Exception as e:
            raise FetchFailure(
                "Failed to collect list items",
                context={"source": adapter.source},
                original_exception=e
            )

        return items, invalid

    @staticmethod
    def _sample_mapping_miss(
        result: ItemResult,
        items_by_id: Dict[str, ListItem],
        samples: Dict[str, Dict[str, Any]],
    ) -> None:
        resolution = result.resolution
        if not result.ok or resolution is None or not resolution.mapping_missed:
            return
        item = items_by_id.get(result.source_post_id)
        if item is None or not item.source_category_key:
            return
        key = f"{result.source}:{item.source_category_key}"
        if key in samples:
            return
        samples[key] = {
            "source": result.source,
            "source_category_key": item.source_category_key,
            "source_category_name": item.source_category_name,
            "example_deal_id": result.deal_id,
            "example_source_post_id": result.source_post_id,
            "example_post_url": result.post_url,
        }

    def _log_summary(
        self,
        source: str,
        stats: CrawlStats,
        mapping_misses: Dict[str, Dict[str, Any]],
        category_count_before: int,
        category_count_after: int,
    ) -> None:
        logger.info(
            f"Category mapping summary for {source}: "
            f"source_category_upserts={stats.source_category_upserts}, "
            f"source_category_missing={stats.source_category_missing}, "
            f"mapping_hits={stats.category_mapping_hits}, "
            f"mapping_misses={stats.category_mapping_misses}, "
            f"inferred={stats.category_inferred}, defaulted={stats.category_defaulted}, "
            f"categories {category_count_before} -> {category_count_after}"
        )
        if mapping_misses:
            logger.warning(
                f"Category mapping missing for {len(mapping_misses)} source categories "
                f"(needs manual mapping): {list(mapping_misses.values())}"
            )
        logger.info(f"Crawl completed for {source}: {stats.summary()}")
