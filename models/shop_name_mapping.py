from sqlalchemy import Column, String, DateTime, UniqueConstraint
from datetime import datetime
from models.base import Base, BigIntPK


class ShopNameMapping(Base):
    """Raw mall/shop text as posted on a board -> normalized shop name"""
    __tablename__ = "shop_name_mappings"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    source = Column(String(50), nullable=False)
    raw_name = Column(String(255), nullable=False)
    normalized_name = Column(String(200), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("source", "raw_name", name="uq_shop_name_mappings_raw"),
    )
