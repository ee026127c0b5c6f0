"""
Integration tests for the link ledger and the affiliate converter
"""

import pytest
from sqlalchemy import func, select

from core.config import AffiliateConfig
from core.exceptions import AffiliateConversionError
from ingestion.affiliate import AffiliateConverter, ConversionOutcome
from ingestion.loaders.deal_repository import DealRepository
from ingestion.loaders.link_ledger import AffiliateCandidate, LinkLedger
from models.base import JobType, RunStatus
from models.crawl_run import CrawlRun
from models.purchase_link import PurchaseLink


async def create_deal(db_session, category_id, title="특가"):
    return await DealRepository(db_session).create_deal({"category_id": category_id, "title": title})


async def affiliate_rows(db_session, deal_id=None):
    stmt = select(func.count()).select_from(PurchaseLink).where(PurchaseLink.is_affiliate.is_(True))
    if deal_id is not None:
        stmt = stmt.where(PurchaseLink.deal_id == deal_id)
    return await db_session.scalar(stmt)


class SuffixTransformer:
    def __init__(self):
        self.calls = []

    async def transform(self, url):
        self.calls.append(url)
        return url + ("&" if "?" in url else "?") + "aff=1"


class RejectingTransformer:
    async def transform(self, url):
        if "blocked" in url:
            raise AffiliateConversionError("unsupported merchant", context={"url": url})
        if "none" in url:
            return None
        return url + "?aff=1"


class TestLinkLedger:

    @pytest.mark.asyncio
    async def test_same_pair_inserted_once(self, db_session, seeded_categories):
        deal_id = await create_deal(db_session, seeded_categories["ETC"])
        ledger = LinkLedger(db_session)

        assert await ledger.insert_original(deal_id, "https://shop.example.com/p/1", "shop.example.com") is True
        assert await ledger.insert_original(deal_id, "https://shop.example.com/p/1", "shop.example.com") is False
        await db_session.commit()

        total = await db_session.scalar(select(func.count()).select_from(PurchaseLink))
        assert total == 1

    @pytest.mark.asyncio
    async def test_candidates_exclude_deals_with_affiliate(self, db_session, seeded_categories):
        ledger = LinkLedger(db_session)
        first = await create_deal(db_session, seeded_categories["ETC"])
        second = await create_deal(db_session, seeded_categories["ETC"])
        await ledger.insert_original(first, "https://a.example.com/1", "a.example.com")
        await ledger.insert_original(second, "https://b.example.com/2", "b.example.com")
        await ledger.insert_affiliate(first, "https://go.example.com/?u=1", "go.example.com")
        await db_session.commit()

        candidates = await ledger.list_affiliate_candidates(after_id=0, limit=10)

        assert [c.deal_id for c in candidates] == [second]
        assert await ledger.has_affiliate(first) is True
        assert await ledger.has_affiliate(second) is False

    @pytest.mark.asyncio
    async def test_candidates_keyset_paged(self, db_session, seeded_categories):
        ledger = LinkLedger(db_session)
        for i in range(3):
            deal_id = await create_deal(db_session, seeded_categories["ETC"])
            await ledger.insert_original(deal_id, f"https://a.example.com/{i}", "a.example.com")
        await db_session.commit()

        page = await ledger.list_affiliate_candidates(after_id=0, limit=2)
        rest = await ledger.list_affiliate_candidates(after_id=page[-1].link_id, limit=2)

        assert len(page) == 2
        assert len(rest) == 1
        assert rest[0].link_id > page[-1].link_id

    @pytest.mark.asyncio
    async def test_advisory_lock_only_on_postgresql(self, db_session, seeded_categories):
        ledger = LinkLedger(db_session)
        taken = await ledger.lock_deal(1)
        assert taken == (db_session.get_bind().dialect.name == "postgresql")


class TestAffiliateConverter:

    def _config(self, **overrides):
        values = dict(redirect_base="https://go.example.com/r", batch_size=2)
        values.update(overrides)
        return AffiliateConfig(**values)

    @pytest.mark.asyncio
    async def test_run_twice_yields_one_affiliate_per_deal(self, db_session, seeded_categories):
        ledger = LinkLedger(db_session)
        deal_ids = []
        for i in range(3):
            deal_id = await create_deal(db_session, seeded_categories["ETC"])
            deal_ids.append(deal_id)
            await ledger.insert_original(deal_id, f"https://shop.example.com/p/{i}", "shop.example.com")
        # second original link on the same deal
        await ledger.insert_original(deal_ids[0], "https://shop.example.com/p/0b", "shop.example.com")
        await db_session.commit()

        first_run = await AffiliateConverter(db_session, self._config(), SuffixTransformer()).run()
        second_run = await AffiliateConverter(db_session, self._config(), SuffixTransformer()).run()

        assert first_run.converted == 3
        assert second_run.candidates == 0
        for deal_id in deal_ids:
            assert await affiliate_rows(db_session, deal_id) == 1

        originals = await db_session.scalar(
            select(func.count()).select_from(PurchaseLink).where(PurchaseLink.is_affiliate.is_(False))
        )
        assert originals == 4

    @pytest.mark.asyncio
    async def test_default_transformer(self, db_session, seeded_categories):
        deal_id = await create_deal(db_session, seeded_categories["ETC"])
        await LinkLedger(db_session).insert_original(deal_id, "https://shop.example.com/p/1", "shop.example.com")
        await db_session.commit()

        stats = await AffiliateConverter(db_session, self._config(tracking_id="hd")).run()

        assert stats.converted == 1
        url = await db_session.scalar(select(PurchaseLink.url).where(PurchaseLink.is_affiliate.is_(True)))
        assert url.startswith("https://go.example.com/r?redirect=")
        assert url.endswith("tracking_id=hd")

    @pytest.mark.asyncio
    async def test_failed_transformations_are_skipped(self, db_session, seeded_categories):
        ledger = LinkLedger(db_session)
        for path in ("blocked", "none", "ok"):
            deal_id = await create_deal(db_session, seeded_categories["ETC"])
            await ledger.insert_original(deal_id, f"https://shop.example.com/{path}", "shop.example.com")
        await db_session.commit()

        stats = await AffiliateConverter(db_session, self._config(), RejectingTransformer()).run()

        assert stats.candidates == 3
        assert stats.converted == 1
        assert stats.skipped == 2
        assert stats.failed == 0
        assert await affiliate_rows(db_session) == 1

    @pytest.mark.asyncio
    async def test_existing_affiliate_rechecked(self, db_session, seeded_categories):
        deal_id = await create_deal(db_session, seeded_categories["ETC"])
        ledger = LinkLedger(db_session)
        await ledger.insert_affiliate(deal_id, "https://go.example.com/r?x", "go.example.com")
        await db_session.commit()

        converter = AffiliateConverter(db_session, self._config(), SuffixTransformer())
        outcome = await converter.convert(
            AffiliateCandidate(link_id=1, deal_id=deal_id, url="https://shop.example.com/p/1")
        )

        assert outcome == ConversionOutcome.SKIPPED
        assert await affiliate_rows(db_session, deal_id) == 1

    @pytest.mark.asyncio
    async def test_run_recorded(self, db_session, seeded_categories):
        await AffiliateConverter(db_session, self._config(), SuffixTransformer()).run()

        run = (await db_session.execute(select(CrawlRun))).scalar_one()
        assert run.job == JobType.AFFILIATE
        assert run.status == RunStatus.SUCCESS
        assert run.stats["candidates"] == 0
