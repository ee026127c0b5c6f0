from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK


class PurchaseLink(Base):
    """
    URL through which a deal's item can be bought.

    Design:
    - Original rows (is_affiliate=False) are written once and never updated
    - Affiliate rows are separate inserts for the same deal id
    - (deal_id, url) is unique, so re-inserting a pair is a no-op
    """
    __tablename__ = "deal_links"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    deal_id = Column(BigInteger, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False)
    url = Column(String(2048), nullable=False)
    domain = Column(String(255), nullable=False)
    is_affiliate = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("deal_id", "url", name="uq_deal_links_deal_url"),
        Index("idx_deal_links_affiliate", "deal_id", "is_affiliate"),
    )
