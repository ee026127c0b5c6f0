"""
SQLAlchemy ORM models for database tables.

This package defines the storage contract of the pipeline:

Models:
    base: Declarative base, portable column types and shared enums
    category: StandardCategory, SourceCategory, CategoryMapping (1:1 bridge)
    deal: Deal and DealSource (identity key: source + source_post_id)
    purchase_link: Original/affiliate purchase URLs per deal
    metric_snapshot: Insert-only metric history
    raw_data: Append-only raw crawl archive
    shop_name_mapping: Raw shop text -> normalized shop name
    crawl_run: Batch run audit (CrawlRun)

Usage:
    from models import Deal, DealSource, PurchaseLink
    from models.base import ShippingType

Relationships:
    - StandardCategory → Deal (one-to-many)
    - SourceCategory ↔ StandardCategory (one-to-one via CategoryMapping)
    - Deal → DealSource, PurchaseLink, MetricSnapshot (one-to-many)
"""

from models.base import Base, ShippingType, RunStatus, JobType
from models.category import StandardCategory, SourceCategory, CategoryMapping
from models.deal import Deal, DealSource
from models.purchase_link import PurchaseLink
from models.metric_snapshot import MetricSnapshot
from models.raw_data import RawRecord
from models.shop_name_mapping import ShopNameMapping
from models.crawl_run import CrawlRun

__all__ = [
    "Base",
    "ShippingType",
    "RunStatus",
    "JobType",
    "StandardCategory",
    "SourceCategory",
    "CategoryMapping",
    "Deal",
    "DealSource",
    "PurchaseLink",
    "MetricSnapshot",
    "RawRecord",
    "ShopNameMapping",
    "CrawlRun",
]
