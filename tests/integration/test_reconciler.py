"""
Integration tests for per-item reconciliation
"""

import pytest
from sqlalchemy import func, select

from ingestion.loaders.shop_names import ShopNameMappingResolver
from ingestion.reconciler import DealReconciler
from models.base import ShippingType
from models.deal import Deal, DealSource
from models.metric_snapshot import MetricSnapshot
from models.purchase_link import PurchaseLink
from models.raw_data import RawRecord
from schemas.normalized import DealDraft
from schemas.results import ItemOutcome, ResolutionStage


def make_draft(**overrides):
    data = dict(
        source="fmkorea",
        source_post_id="123",
        post_url="https://www.fmkorea.com/123",
        title="농심 신라면 40봉",
        source_title="[쿠팡] 농심 신라면 40봉 (19,900원)",
        price=19900,
        shipping_type=ShippingType.FREE,
        raw_shop_name="쿠팡",
        purchase_url="https://link.coupang.com/a/abc",
        purchase_domain="link.coupang.com",
        views=100,
        votes=5,
        comments=2,
    )
    data.update(overrides)
    return DealDraft(**data)


async def count(db_session, model):
    return await db_session.scalar(select(func.count()).select_from(model))


class FailingThumbnailCache:
    async def cache(self, source_url):
        raise RuntimeError("storage unavailable")


class PrefixThumbnailCache:
    async def cache(self, source_url):
        return "https://cdn.example.com/" + source_url.rsplit("/", 1)[-1]


class TestDealReconciler:

    @pytest.mark.asyncio
    async def test_new_post_creates_deal_and_history(self, db_session, pipeline_config, seeded_categories):
        reconciler = DealReconciler(db_session, pipeline_config)

        result = await reconciler.reconcile(make_draft(), {"detail": {"price": "19,900원"}})

        assert result.outcome == ItemOutcome.PROCESSED
        assert result.created is True
        deal = await db_session.get(Deal, result.deal_id)
        assert deal.title == "농심 신라면 40봉"
        assert deal.price == 19900
        assert deal.shipping_type == ShippingType.FREE
        assert deal.category_id == seeded_categories["FOOD"]
        assert deal.subcategory == "instant_food"
        assert deal.shop_name is None

        assert await count(db_session, DealSource) == 1
        assert await count(db_session, PurchaseLink) == 1
        assert await count(db_session, MetricSnapshot) == 1
        assert await count(db_session, RawRecord) == 1

    @pytest.mark.asyncio
    async def test_identity_stable_across_runs(self, db_session, pipeline_config, seeded_categories):
        reconciler = DealReconciler(db_session, pipeline_config)

        first = await reconciler.reconcile(make_draft(), {})
        second = await reconciler.reconcile(make_draft(price=17900, views=250), {})

        assert first.deal_id == second.deal_id
        assert second.created is False
        assert await count(db_session, Deal) == 1
        assert await count(db_session, DealSource) == 1
        assert await count(db_session, PurchaseLink) == 1
        assert await count(db_session, MetricSnapshot) == 2
        assert await count(db_session, RawRecord) == 2

        price = await db_session.scalar(select(Deal.price).where(Deal.id == first.deal_id))
        assert price == 17900

    @pytest.mark.asyncio
    async def test_shop_name_mapping_applied(self, db_session, pipeline_config, seeded_categories):
        await ShopNameMappingResolver(db_session).upsert("fmkorea", "쿠팡", "Coupang")
        await db_session.commit()

        result = await DealReconciler(db_session, pipeline_config).reconcile(make_draft(), {})

        shop_name = await db_session.scalar(select(Deal.shop_name).where(Deal.id == result.deal_id))
        assert shop_name == "Coupang"

    @pytest.mark.asyncio
    async def test_no_purchase_link_without_domain(self, db_session, pipeline_config, seeded_categories):
        result = await DealReconciler(db_session, pipeline_config).reconcile(
            make_draft(purchase_url=None, purchase_domain=None), {}
        )

        assert result.ok
        assert await count(db_session, PurchaseLink) == 0

    @pytest.mark.asyncio
    async def test_mapping_miss_recorded(self, db_session, pipeline_config, seeded_categories):
        result = await DealReconciler(db_session, pipeline_config).reconcile(
            make_draft(source_category_key="food", source_category_name="먹거리", title="특가 모음"), {}
        )

        assert result.resolution.stage == ResolutionStage.DEFAULT
        assert result.resolution.mapping_missed is True
        assert result.resolution.source_category_upserted is True

    @pytest.mark.asyncio
    async def test_thumbnail_cache_failure_keeps_original(self, db_session, pipeline_config, seeded_categories):
        reconciler = DealReconciler(db_session, pipeline_config, thumbnail_cache=FailingThumbnailCache())

        result = await reconciler.reconcile(make_draft(thumbnail_url="https://img.example.com/a.jpg"), {})

        assert result.ok
        thumb = await db_session.scalar(select(Deal.thumbnail_url).where(Deal.id == result.deal_id))
        assert thumb == "https://img.example.com/a.jpg"

    @pytest.mark.asyncio
    async def test_thumbnail_cache_result_stored(self, db_session, pipeline_config, seeded_categories):
        reconciler = DealReconciler(db_session, pipeline_config, thumbnail_cache=PrefixThumbnailCache())

        result = await reconciler.reconcile(make_draft(thumbnail_url="https://img.example.com/a.jpg"), {})

        thumb = await db_session.scalar(select(Deal.thumbnail_url).where(Deal.id == result.deal_id))
        assert thumb == "https://cdn.example.com/a.jpg"

    @pytest.mark.asyncio
    async def test_persist_failure_rolls_back_item_only(self, db_session, seeded_categories, pipeline_config):
        reconciler = DealReconciler(db_session, pipeline_config)
        ok = await reconciler.reconcile(make_draft(), {})

        # a payload that cannot be serialized fails at the raw-record insert
        failed = await reconciler.reconcile(
            make_draft(source_post_id="456", post_url="https://www.fmkorea.com/456"),
            {"bad": object()},
        )

        assert ok.ok
        assert failed.outcome == ItemOutcome.PERSIST_FAILED
        assert failed.error["error_type"] == "PersistFailure"
        assert await count(db_session, Deal) == 1
        assert await count(db_session, DealSource) == 1
        assert await count(db_session, MetricSnapshot) == 1
