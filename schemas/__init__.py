"""
Pydantic schemas for data validation and serialization.

Schemas:
    extracted: ListItem / DetailRecord produced by the site extractors
    normalized: DealDraft, the normalized view of one crawled post
    results: Fetch/item results and the run summaries (CrawlStats, ...)

Usage:
    from schemas.extracted import ListItem, DetailRecord
    from schemas.normalized import DealDraft
    from schemas.results import CrawlStats, ItemResult

Validation:
    Extractor output is validated on entry so malformed shapes become a
    ParseFailure for that single item instead of a database error.
"""

__all__ = [
    "ListItem",
    "DetailRecord",
    "DealDraft",
    "FetchTarget",
    "FetchReport",
    "CategoryResolution",
    "ItemResult",
    "CrawlStats",
    "RefreshStats",
    "AffiliateStats",
    "SubcategoryStats",
]
