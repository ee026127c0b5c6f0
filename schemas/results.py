"""
Result values exchanged between pipeline stages.

Nothing in the batch loops raises for a single item: each stage returns one
of the values below and the runner folds them into the run counters.
"""

import enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Fetch stage
# ============================================================================

class FetchTarget(BaseModel):
    source_post_id: str
    post_url: str


class FetchSuccess(BaseModel):
    source_post_id: str
    post_url: str  # the URL variant that actually loaded
    html: str
    attempts: int = 1


class FetchFailureRecord(BaseModel):
    source_post_id: str
    last_url: str
    error: str
    attempts: int = 0


class FetchReport(BaseModel):
    successes: List[FetchSuccess] = Field(default_factory=list)
    failures: List[FetchFailureRecord] = Field(default_factory=list)


# ============================================================================
# Category resolution
# ============================================================================

class ResolutionStage(str, enum.Enum):
    """Cascade stage that produced a category"""
    MAPPING = "mapping"
    INFERENCE = "inference"
    DEFAULT = "default"


class CategoryResolution(BaseModel):
    category_id: int
    stage: ResolutionStage
    category_name: Optional[str] = None
    source_category_id: Optional[int] = None
    source_category_upserted: bool = False
    mapping_missed: bool = False
    rule_category: Optional[str] = None
    rule_score: Optional[int] = None


# ============================================================================
# Per-item reconciliation
# ============================================================================

class ItemOutcome(str, enum.Enum):
    PROCESSED = "processed"
    SKIPPED = "skipped"
    PARSE_FAILED = "parse_failed"
    PERSIST_FAILED = "persist_failed"


class ItemResult(BaseModel):
    source: str
    source_post_id: str
    post_url: Optional[str] = None
    outcome: ItemOutcome
    deal_id: Optional[int] = None
    created: bool = False
    resolution: Optional[CategoryResolution] = None
    error: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.outcome == ItemOutcome.PROCESSED


# ============================================================================
# Run summaries
# ============================================================================

class CrawlStats(BaseModel):
    """Summary of one crawl run"""

    targets: int = 0
    fetched: int = 0
    detail_failures: int = 0
    processed: int = 0
    skipped: int = 0
    parser_failures: int = 0
    persist_failures: int = 0

    # Category diagnostics
    source_category_upserts: int = 0
    source_category_missing: int = 0
    category_mapping_hits: int = 0
    category_mapping_misses: int = 0
    category_inferred: int = 0
    category_defaulted: int = 0

    def record(self, result: ItemResult) -> None:
        if result.outcome == ItemOutcome.PROCESSED:
            self.processed += 1
        elif result.outcome == ItemOutcome.SKIPPED:
            self.skipped += 1
        elif result.outcome == ItemOutcome.PARSE_FAILED:
            self.parser_failures += 1
        elif result.outcome == ItemOutcome.PERSIST_FAILED:
            self.persist_failures += 1

        resolution = result.resolution
        if resolution is None or not result.ok:
            return
        if resolution.source_category_upserted:
            self.source_category_upserts += 1
        else:
            self.source_category_missing += 1
        if resolution.stage == ResolutionStage.MAPPING:
            self.category_mapping_hits += 1
        elif resolution.mapping_missed:
            self.category_mapping_misses += 1
        if resolution.stage == ResolutionStage.INFERENCE:
            self.category_inferred += 1
        elif resolution.stage == ResolutionStage.DEFAULT:
            self.category_defaulted += 1

    def summary(self) -> Dict[str, int]:
        return self.model_dump(include={
            "targets", "fetched", "detail_failures", "processed",
            "skipped", "parser_failures", "persist_failures",
        })


class RefreshStats(BaseModel):
    """Summary of one refresh-metrics run"""

    targets: int = 0
    detail_failures: int = 0
    processed: int = 0
    skipped: int = 0
    parser_failures: int = 0
    persist_failures: int = 0

    def record(self, result: ItemResult) -> None:
        if result.outcome == ItemOutcome.PROCESSED:
            self.processed += 1
        elif result.outcome == ItemOutcome.SKIPPED:
            self.skipped += 1
        elif result.outcome == ItemOutcome.PARSE_FAILED:
            self.parser_failures += 1
        elif result.outcome == ItemOutcome.PERSIST_FAILED:
            self.persist_failures += 1


class SubcategoryStats(BaseModel):
    scanned: int = 0
    updated: int = 0


class AffiliateStats(BaseModel):
    """Summary of one affiliate conversion pass"""

    candidates: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0
