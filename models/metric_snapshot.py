from sqlalchemy import Column, String, BigInteger, Integer, DateTime, ForeignKey, Index
from datetime import datetime
from models.base import Base, BigIntPK


class MetricSnapshot(Base):
    """
    One timestamped observation of a deal's views/votes/comments.

    Insert-only: the pipeline never updates or deletes rows here, so the
    table is the deal's metric history.
    """
    __tablename__ = "deal_metrics_history"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    deal_id = Column(BigInteger, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(50), nullable=False)

    views = Column(Integer, nullable=True)
    votes = Column(Integer, nullable=True)
    comments = Column(Integer, nullable=True)

    captured_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_metrics_deal_captured", "deal_id", "captured_at"),
    )
