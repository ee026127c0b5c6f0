"""
Category Resolver: mapping -> keyword/domain inference -> default.

Runs inside the item's transaction; the SourceCategory upsert is rolled
back together with the rest of the item.
"""

from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import PipelineConfig
from core.exceptions import CategoryResolutionError
from ingestion.loaders.category_repository import CategoryRepository
from ingestion.rules import RULES, CategoryRule, infer_category
from schemas.results import CategoryResolution, ResolutionStage
import logging

logger = logging.getLogger(__name__)


class CategoryResolver:
    """
    Resolve exactly one StandardCategory for a crawled post.

    Cascade (first success wins):
    1. Source category key+name present: upsert it and follow its mapping
    2. Best-scoring rule of the ordered rule table, if its category exists
    3. The configured default category
    """

    def __init__(
        self,
        db_session: AsyncSession,
        config: PipelineConfig,
        rules: Iterable[CategoryRule] = RULES,
    ):
        self.db = db_session
        self.config = config
        self.rules = tuple(rules)
        self.categories = CategoryRepository(db_session)

    async def resolve(
        self,
        source: str,
        source_category_key: Optional[str] = None,
        source_category_name: Optional[str] = None,
        title: Optional[str] = None,
        body: Optional[str] = None,
        domains: Optional[Iterable[Optional[str]]] = None,
    ) -> CategoryResolution:
        source_category_id = None
        mapping_missed = False

        # 1. Source category mapping
        if source_category_key and source_category_name:
            source_category_id = await self.categories.upsert_source_category(
                source, source_category_key, source_category_name
            )
            mapped = await self.categories.find_mapped_category(source_category_id)
            if mapped:
                category_id, category_name = mapped
                return CategoryResolution(
                    category_id=category_id,
                    category_name=category_name,
                    stage=ResolutionStage.MAPPING,
                    source_category_id=source_category_id,
                    source_category_upserted=True,
                )
            mapping_missed = True
            logger.debug(
                f"No category mapping for {source}:{source_category_key} "
                f"({source_category_name}); falling back to inference"
            )

        # 2. Rule inference
        match = infer_category(title, body, domains, rules=self.rules)
        if match:
            category = await self.categories.get_by_name(match.category_name)
            if category is not None:
                return CategoryResolution(
                    category_id=category.id,
                    category_name=category.name,
                    stage=ResolutionStage.INFERENCE,
                    source_category_id=source_category_id,
                    source_category_upserted=source_category_id is not None,
                    mapping_missed=mapping_missed,
                    rule_category=match.category_name,
                    rule_score=match.score,
                )
            logger.warning(
                f"Inferred category '{match.category_name}' (score={match.score}) "
                f"has no categories row; using default"
            )

        # 3. Default
        default = await self.categories.get_by_id(self.config.default_category_id)
        if default is None:
            raise CategoryResolutionError(
                "Default category does not exist",
                context={
                    "source": source,
                    "default_category_id": self.config.default_category_id,
                }
            )
        return CategoryResolution(
            category_id=default.id,
            category_name=default.name,
            stage=ResolutionStage.DEFAULT,
            source_category_id=source_category_id,
            source_category_upserted=source_category_id is not None,
            mapping_missed=mapping_missed,
            rule_category=match.category_name if match else None,
            rule_score=match.score if match else None,
        )
