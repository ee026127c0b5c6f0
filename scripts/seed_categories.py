"""
Script to seed standard categories, source category mappings and shop-name mappings
"""

import asyncio
import sys
import os
import logging
from typing import List, Tuple

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import build_engine, build_session_maker
from core.logging import setup_logging
from ingestion.loaders.category_repository import CategoryRepository
from ingestion.loaders.shop_names import ShopNameMappingResolver

logger = logging.getLogger(__name__)

CATEGORIES = [
    "ELECTRONICS",
    "LIFE",
    "BABY",
    "FASHION",
    "MOBILE",
    "GAME",
    "GIFT",
    "FOOD",
    "HOME",
    "BEAUTY",
    "HEALTH",
    "ETC",
]

# (source, source category name, standard category name)
# Mappings are 1:1; a second source category for the same standard category is skipped.
CATEGORY_MAPPINGS: List[Tuple[str, str, str]] = [
    ("ruliweb", "공지", "ETC"),
    ("ruliweb", "상품권", "GIFT"),
    ("ruliweb", "게임S/W", "GAME"),
    ("ruliweb", "PC/가전", "ELECTRONICS"),
    ("ruliweb", "음식", "FOOD"),
    ("ruliweb", "의류", "FASHION"),
    ("ruliweb", "취미용품", "LIFE"),
    ("ruliweb", "생활용품", "HOME"),
    ("ruliweb", "육아용품", "BABY"),
    ("ruliweb", "휴대폰", "MOBILE"),
    ("ruliweb", "화장품", "BEAUTY"),
]

# (source, raw shop text, normalized shop name)
SHOP_NAME_MAPPINGS: List[Tuple[str, str, str]] = []


async def seed():
    engine = build_engine()
    SessionLocal = build_session_maker(engine)

    try:
        async with SessionLocal() as session:
            categories = CategoryRepository(session)

            for name in CATEGORIES:
                category_id = await categories.get_or_create_by_name(name)
                logger.info(f"Ensured category {name} (id={category_id})")

            for source, source_name, category_name in CATEGORY_MAPPINGS:
                source_category_id = await categories.find_source_category_id_by_name(source, source_name)
                if source_category_id is None:
                    logger.warning(f"Skipping mapping: source category not crawled yet: {source}:{source_name}")
                    continue
                category = await categories.get_by_name(category_name)
                if category is None:
                    logger.warning(f"Skipping mapping: category not found: {category_name}")
                    continue
                if await categories.ensure_mapping(source_category_id, category.id):
                    logger.info(f"Mapped {source}:{source_name} -> {category_name}")

            shop_names = ShopNameMappingResolver(session)
            for source, raw_name, normalized_name in SHOP_NAME_MAPPINGS:
                await shop_names.upsert(source, raw_name, normalized_name)
                logger.info(f"Mapped shop {source}:{raw_name} -> {normalized_name}")

            await session.commit()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(seed())
    except Exception as e:
        logger.error(f"Seeding failed: {str(e)}")
        sys.exit(1)
