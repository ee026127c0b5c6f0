from sqlalchemy import (
    Column, String, BigInteger, Enum, Text, Float, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK, ShippingType


class Deal(Base):
    """
    Normalized, upserted representation of one hot-deal.

    Owned by the pipeline: every crawl or refresh that touches the same
    DealSource identity overwrites the mutable fields below and bumps
    updated_at, while the id stays stable.
    """
    __tablename__ = "deals"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    category_id = Column(BigInteger, ForeignKey("categories.id"), nullable=False, index=True)

    title = Column(String(500), nullable=False)
    price = Column(Float, nullable=True)
    shipping_type = Column(
        Enum(ShippingType, name="shipping_type", native_enum=False, length=16),
        nullable=False,
        default=ShippingType.UNKNOWN,
    )
    sold_out = Column(Boolean, nullable=False, default=False)
    thumbnail_url = Column(String(2048), nullable=True)
    subcategory = Column(String(50), nullable=True, index=True)
    shop_name = Column(String(200), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("StandardCategory")
    sources = relationship("DealSource", back_populates="deal")


class DealSource(Base):
    """
    One community post contributing to a Deal.

    (source, source_post_id) is the identity key the whole reconciliation
    pivots on; once a row points at a deal id it is never re-pointed.
    """
    __tablename__ = "deal_sources"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    deal_id = Column(BigInteger, ForeignKey("deals.id", ondelete="CASCADE"), nullable=False, index=True)

    source = Column(String(50), nullable=False)
    source_post_id = Column(String(100), nullable=False)
    post_url = Column(String(2048), nullable=False)
    source_category_id = Column(BigInteger, ForeignKey("source_categories.id"), nullable=True)

    title = Column(String(500), nullable=False)
    thumb_url = Column(String(2048), nullable=True)
    shop_name_raw = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    deal = relationship("Deal", back_populates="sources")

    __table_args__ = (
        UniqueConstraint("source", "source_post_id", name="uq_deal_sources_post"),
        UniqueConstraint("source", "post_url", name="uq_deal_sources_post_url"),
        Index("idx_deal_sources_recent", "source", "created_at"),
    )
