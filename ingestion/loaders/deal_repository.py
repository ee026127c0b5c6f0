"""
Deal and DealSource persistence keyed by the (source, source_post_id) identity
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.loaders.dialect import upsert_insert
from models.category import StandardCategory
from models.deal import Deal, DealSource

# Columns a crawl or refresh may overwrite on an existing deal
MUTABLE_DEAL_FIELDS = (
    "category_id",
    "title",
    "price",
    "shipping_type",
    "sold_out",
    "thumbnail_url",
    "subcategory",
    "shop_name",
)


@dataclass(frozen=True)
class RecentPost:
    deal_id: int
    source_post_id: str
    post_url: str
    title: str


@dataclass(frozen=True)
class SubcategoryRow:
    deal_id: int
    title: str
    source_title: Optional[str]
    subcategory: Optional[str]
    category_name: Optional[str]


class DealRepository:
    """Deal/DealSource reads and writes inside the caller's transaction"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def find_source(self, source: str, source_post_id: str) -> Optional[DealSource]:
        result = await self.db.execute(
            select(DealSource).where(
                DealSource.source == source,
                DealSource.source_post_id == source_post_id,
            )
        )
        return result.scalar_one_or_none()

    async def create_deal(self, fields: Dict[str, Any]) -> int:
        values = {k: v for k, v in fields.items() if k in MUTABLE_DEAL_FIELDS}
        result = await self.db.execute(
            insert(Deal).values(**values).returning(Deal.id)
        )
        return result.scalar_one()

    async def update_deal(self, deal_id: int, fields: Dict[str, Any]) -> None:
        values = {k: v for k, v in fields.items() if k in MUTABLE_DEAL_FIELDS}
        if not values:
            return
        await self.db.execute(
            update(Deal).where(Deal.id == deal_id).values(**values)
        )

    async def upsert_source(
        self,
        deal_id: int,
        source: str,
        source_post_id: str,
        post_url: str,
        title: str,
        source_category_id: Optional[int] = None,
        thumb_url: Optional[str] = None,
        shop_name_raw: Optional[str] = None,
    ) -> int:
        """
        Insert the DealSource row or refresh its descriptive columns.

        deal_id is written on insert only; an existing row keeps the deal it
        was first linked to.
        """
        stmt = upsert_insert(self.db, DealSource).values(
            deal_id=deal_id,
            source=source,
            source_post_id=source_post_id,
            post_url=post_url,
            source_category_id=source_category_id,
            title=title,
            thumb_url=thumb_url,
            shop_name_raw=shop_name_raw,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "source_post_id"],
            set_={
                "post_url": stmt.excluded.post_url,
                "source_category_id": stmt.excluded.source_category_id,
                "title": stmt.excluded.title,
                "thumb_url": stmt.excluded.thumb_url,
                "shop_name_raw": stmt.excluded.shop_name_raw,
            },
        ).returning(DealSource.deal_id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def list_recent_posts(self, source: str, limit: int) -> List[RecentPost]:
        """Most recently first-seen posts of a source"""
        result = await self.db.execute(
            select(DealSource.deal_id, DealSource.source_post_id, DealSource.post_url, DealSource.title)
            .where(DealSource.source == source)
            .order_by(DealSource.created_at.desc(), DealSource.id.desc())
            .limit(limit)
        )
        return [
            RecentPost(
                deal_id=row.deal_id,
                source_post_id=row.source_post_id,
                post_url=row.post_url,
                title=row.title,
            )
            for row in result
        ]

    async def list_deals_for_subcategory(self, after_id: int, limit: int) -> List[SubcategoryRow]:
        """Keyset page of deals (id > after_id) with what the classifier needs"""
        first_source_title = (
            select(DealSource.title)
            .where(DealSource.deal_id == Deal.id)
            .order_by(DealSource.id)
            .limit(1)
            .scalar_subquery()
        )
        result = await self.db.execute(
            select(
                Deal.id,
                Deal.title,
                Deal.subcategory,
                StandardCategory.name.label("category_name"),
                first_source_title.label("source_title"),
            )
            .outerjoin(StandardCategory, StandardCategory.id == Deal.category_id)
            .where(Deal.id > after_id)
            .order_by(Deal.id)
            .limit(limit)
        )
        return [
            SubcategoryRow(
                deal_id=row.id,
                title=row.title,
                source_title=row.source_title,
                subcategory=row.subcategory,
                category_name=row.category_name,
            )
            for row in result
        ]
