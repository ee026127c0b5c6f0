"""
Deal Reconciler - one crawled post, one database transaction.

Inside the transaction, in order:
    category -> shop name -> subcategory -> Deal (insert or update by identity)
    -> DealSource -> original purchase link -> metric snapshot -> raw record

A failure anywhere rolls back only this item and comes back as a
PERSIST_FAILED ItemResult; nothing is raised to the batch loop.
"""

from typing import Any, Dict, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import PipelineConfig
from core.exceptions import PersistFailure
from ingestion.base import ShopNameResolver, ThumbnailCache
from ingestion.category_resolver import CategoryResolver
from ingestion.loaders.deal_repository import DealRepository
from ingestion.loaders.history import MetricsRecorder, RawArchive
from ingestion.loaders.link_ledger import LinkLedger
from ingestion.loaders.shop_names import ShopNameMappingResolver
from ingestion.rules import RULES, CategoryRule
from ingestion.transformers.subcategory import classify_subcategory
from schemas.normalized import DealDraft
from schemas.results import ItemOutcome, ItemResult
import logging

logger = logging.getLogger(__name__)


class DealReconciler:
    """
    Reconcile normalized drafts into Deal/DealSource and their history rows.

    Identity: DealSource (source, source_post_id). A known identity updates
    the linked Deal in place and keeps its id; an unknown one inserts a new
    Deal and then the DealSource pointing at it.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        config: PipelineConfig,
        shop_name_resolver: Optional[ShopNameResolver] = None,
        thumbnail_cache: Optional[ThumbnailCache] = None,
        rules: Iterable[CategoryRule] = RULES,
    ):
        self.db = db_session
        self.config = config
        self.categories = CategoryResolver(db_session, config, rules=rules)
        self.shop_names = shop_name_resolver or ShopNameMappingResolver(db_session)
        self.thumbnails = thumbnail_cache
        self.deals = DealRepository(db_session)
        self.links = LinkLedger(db_session)
        self.metrics = MetricsRecorder(db_session)
        self.archive = RawArchive(db_session)

    async def reconcile(self, draft: DealDraft, raw_payload: Dict[str, Any]) -> ItemResult:
        """
        Persist one draft atomically.

        Args:
            draft: Normalized post
            raw_payload: JSON-serializable copy of everything extracted for it

        Returns:
            PROCESSED with the deal id, or PERSIST_FAILED with the error context
        """
        thumbnail_url = await self._cache_thumbnail(draft)

        deal_id = None
        try:
            resolution = await self.categories.resolve(
                draft.source,
                draft.source_category_key,
                draft.source_category_name,
                title=draft.title,
                body=draft.summary_text,
                domains=[draft.purchase_domain] if draft.purchase_domain else None,
            )

            shop_name = await self._resolve_shop_name(draft)
            subcategory = classify_subcategory(resolution.category_name, draft.title, draft.summary_text)

            fields = {
                "category_id": resolution.category_id,
                "title": draft.title,
                "price": draft.price,
                "shipping_type": draft.shipping_type,
                "sold_out": draft.sold_out,
                "thumbnail_url": thumbnail_url,
                "subcategory": subcategory,
                "shop_name": shop_name,
            }

            existing = await self.deals.find_source(draft.source, draft.source_post_id)
            created = existing is None
            if existing is None:
                deal_id = await self.deals.create_deal(fields)
            else:
                deal_id = existing.deal_id
                await self.deals.update_deal(deal_id, fields)

            await self.deals.upsert_source(
                deal_id=deal_id,
                source=draft.source,
                source_post_id=draft.source_post_id,
                post_url=draft.post_url,
                title=draft.source_title,
                source_category_id=resolution.source_category_id,
                thumb_url=draft.list_thumbnail_url or thumbnail_url,
                shop_name_raw=draft.raw_shop_name,
            )

            if draft.purchase_url and draft.purchase_domain:
                await self.links.insert_original(deal_id, draft.purchase_url, draft.purchase_domain)

            await self.metrics.insert_snapshot(
                deal_id=deal_id,
                source=draft.source,
                views=draft.views,
                votes=draft.votes,
                comments=draft.comments,
            )
            await self.archive.append(draft.source, draft.source_post_id, raw_payload)

            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            error = PersistFailure(
                "Failed to reconcile deal",
                context={
                    "source": draft.source,
                    "source_post_id": draft.source_post_id,
                    "post_url": draft.post_url,
                    "deal_id": deal_id,
                },
                original_exception=e
            )
            logger.error(
                f"Persist failed for {draft.source}:{draft.source_post_id}: {e}",
                extra={"error_context": error.to_dict()}
            )
            return ItemResult(
                source=draft.source,
                source_post_id=draft.source_post_id,
                post_url=draft.post_url,
                outcome=ItemOutcome.PERSIST_FAILED,
                error=error.to_dict(),
            )

        logger.debug(
            f"Reconciled {draft.source}:{draft.source_post_id} -> deal {deal_id} "
            f"({'created' if created else 'updated'}, category={resolution.category_name} "
            f"via {resolution.stage.value})"
        )
        return ItemResult(
            source=draft.source,
            source_post_id=draft.source_post_id,
            post_url=draft.post_url,
            outcome=ItemOutcome.PROCESSED,
            deal_id=deal_id,
            created=created,
            resolution=resolution,
        )

    async def _resolve_shop_name(self, draft: DealDraft) -> Optional[str]:
        if not draft.raw_shop_name:
            return None
        shop_name = await self.shop_names.resolve(draft.source, draft.raw_shop_name)
        if shop_name is None:
            logger.info(
                f"Shop name mapping missing for {draft.source}:'{draft.raw_shop_name}' "
                f"(post {draft.source_post_id}); storing null"
            )
        return shop_name

    async def _cache_thumbnail(self, draft: DealDraft) -> Optional[str]:
        if not self.thumbnails or not draft.thumbnail_url:
            return draft.thumbnail_url
        try:
            return await self.thumbnails.cache(draft.thumbnail_url)
        except Exception as e:
            logger.warning(
                f"Thumbnail caching failed for {draft.source}:{draft.source_post_id}, "
                f"keeping original url: {e}"
            )
            return draft.thumbnail_url
