from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime
from models.base import Base, BigIntPK, JSONPayload


class RawRecord(Base):
    """
    Stores raw, unprocessed crawl output for one post.

    Purpose:
    - Immutable audit trail
    - Reprocessing capability
    - Debugging and data lineage

    Design Decisions:
    - JSONB (PostgreSQL) for efficient querying of the payload
    - Append-only: every crawl of a post adds a row, nothing is overwritten
    - Queried by (source, source_post_id) newest first
    """
    __tablename__ = "raw_deals"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    source = Column(String(50), nullable=False)
    source_post_id = Column(String(100), nullable=False)

    payload = Column(JSONPayload, nullable=False)

    crawled_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    __table_args__ = (
        Index("idx_raw_source_post_crawled", "source", "source_post_id", "crawled_at"),
    )
