"""
Standard/source category lookups and upserts
"""

from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ingestion.loaders.dialect import upsert_insert
from models.category import CategoryMapping, SourceCategory, StandardCategory
import logging

logger = logging.getLogger(__name__)


class CategoryRepository:
    """
    Category tables accessed inside the caller's transaction.

    Ensures:
    - SourceCategory rows are upserted by (source, source_key)
    - Mappings are read as (category_id, category_name) pairs
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def upsert_source_category(self, source: str, source_key: str, name: str) -> int:
        """
        Insert or rename a source category (INSERT ON CONFLICT UPDATE).

        Returns:
            Id of the SourceCategory row
        """
        stmt = upsert_insert(self.db, SourceCategory).values(
            source=source,
            source_key=source_key,
            name=name,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["source", "source_key"],
            set_={"name": stmt.excluded.name},
        ).returning(SourceCategory.id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def find_mapped_category(self, source_category_id: int) -> Optional[Tuple[int, str]]:
        """(category_id, category_name) mapped to a source category, if any"""
        result = await self.db.execute(
            select(StandardCategory.id, StandardCategory.name)
            .join(CategoryMapping, CategoryMapping.category_id == StandardCategory.id)
            .where(CategoryMapping.source_category_id == source_category_id)
        )
        row = result.first()
        return (row.id, row.name) if row else None

    async def get_by_name(self, name: str) -> Optional[StandardCategory]:
        result = await self.db.execute(
            select(StandardCategory).where(StandardCategory.name == name)
        )
        return result.scalar_one_or_none()

    async def get_by_id(self, category_id: int) -> Optional[StandardCategory]:
        return await self.db.get(StandardCategory, category_id)

    async def get_or_create_by_name(self, name: str) -> int:
        stmt = upsert_insert(self.db, StandardCategory).values(name=name)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"name": stmt.excluded.name},
        ).returning(StandardCategory.id)

        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def ensure_mapping(self, source_category_id: int, category_id: int) -> bool:
        """
        Insert a 1:1 mapping if neither side is mapped yet.

        Returns:
            True if a row was inserted
        """
        stmt = upsert_insert(self.db, CategoryMapping).values(
            source_category_id=source_category_id,
            category_id=category_id,
        ).on_conflict_do_nothing().returning(CategoryMapping.source_category_id)

        result = await self.db.execute(stmt)
        inserted = result.scalar_one_or_none() is not None
        if not inserted:
            logger.warning(
                f"Mapping skipped: source_category_id={source_category_id} or "
                f"category_id={category_id} is already mapped"
            )
        return inserted

    async def count_categories(self) -> int:
        result = await self.db.execute(select(func.count()).select_from(StandardCategory))
        return result.scalar_one()

    async def find_source_category_id_by_name(self, source: str, name: str) -> Optional[int]:
        """Latest source category of a source carrying this display name"""
        result = await self.db.execute(
            select(SourceCategory.id)
            .where(SourceCategory.source == source, SourceCategory.name == name)
            .order_by(SourceCategory.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
