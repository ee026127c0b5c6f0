"""
Shop-name normalization backed by the shop_name_mappings table
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.loaders.dialect import upsert_insert
from models.shop_name_mapping import ShopNameMapping


class ShopNameMappingResolver:
    """Default ShopNameResolver: exact (source, raw_name) lookup"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def resolve(self, source: str, raw_name: str) -> Optional[str]:
        result = await self.db.execute(
            select(ShopNameMapping.normalized_name).where(
                ShopNameMapping.source == source,
                ShopNameMapping.raw_name == raw_name.strip(),
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert(self, source: str, raw_name: str, normalized_name: str) -> None:
        stmt = upsert_insert(self.db, ShopNameMapping).values(
            source=source,
            raw_name=raw_name.strip(),
            normalized_name=normalized_name,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "raw_name"],
            set_={"normalized_name": stmt.excluded.normalized_name},
        )
        await self.db.execute(stmt)
