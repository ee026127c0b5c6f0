"""
Link Ledger: original and affiliate purchase links per deal.

Original rows are written once (INSERT ... ON CONFLICT DO NOTHING) and
never read back for mutation; affiliate rows are separate inserts for the
same deal id.
"""

from dataclasses import dataclass
from typing import List

from sqlalchemy import exists, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from ingestion.loaders.dialect import dialect_name, upsert_insert
from models.purchase_link import PurchaseLink
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AffiliateCandidate:
    link_id: int
    deal_id: int
    url: str


class LinkLedger:
    """
    Insert-only purchase link store.

    Ensures:
    - One row per (deal_id, url); re-inserting is a no-op
    - Candidate selection by anti-join, keyset-paged by link id
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _insert(self, deal_id: int, url: str, domain: str, is_affiliate: bool) -> bool:
        stmt = upsert_insert(self.db, PurchaseLink).values(
            deal_id=deal_id,
            url=url,
            domain=domain,
            is_affiliate=is_affiliate,
        ).on_conflict_do_nothing(
            index_elements=["deal_id", "url"],
        ).returning(PurchaseLink.id)

        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def insert_original(self, deal_id: int, url: str, domain: str) -> bool:
        """
        Record the original purchase URL of a deal.

        Returns:
            True if a new row was inserted, False if the pair already existed
        """
        return await self._insert(deal_id, url, domain, is_affiliate=False)

    async def insert_affiliate(self, deal_id: int, url: str, domain: str) -> bool:
        return await self._insert(deal_id, url, domain, is_affiliate=True)

    async def has_affiliate(self, deal_id: int) -> bool:
        result = await self.db.execute(
            select(
                exists().where(
                    PurchaseLink.deal_id == deal_id,
                    PurchaseLink.is_affiliate.is_(True),
                )
            )
        )
        return bool(result.scalar())

    async def list_affiliate_candidates(self, after_id: int, limit: int) -> List[AffiliateCandidate]:
        """
        Original links whose deal has no affiliate link yet.

        Args:
            after_id: Keyset cursor; only links with a larger id are returned
            limit: Page size
        """
        affiliate = aliased(PurchaseLink)
        has_affiliate_row = exists().where(
            affiliate.deal_id == PurchaseLink.deal_id,
            affiliate.is_affiliate.is_(True),
        )

        result = await self.db.execute(
            select(PurchaseLink.id, PurchaseLink.deal_id, PurchaseLink.url)
            .where(
                PurchaseLink.is_affiliate.is_(False),
                PurchaseLink.id > after_id,
                ~has_affiliate_row,
            )
            .order_by(PurchaseLink.id)
            .limit(limit)
        )
        return [
            AffiliateCandidate(link_id=row.id, deal_id=row.deal_id, url=row.url)
            for row in result
        ]

    async def lock_deal(self, deal_id: int) -> bool:
        """
        Take a transaction-scoped advisory lock on the deal (PostgreSQL only).

        Returns:
            True if a lock was taken
        """
        if dialect_name(self.db) != "postgresql":
            return False
        await self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": deal_id})
        return True
