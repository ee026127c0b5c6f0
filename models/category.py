from sqlalchemy import Column, String, BigInteger, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from models.base import Base, BigIntPK


class StandardCategory(Base):
    """
    Internal taxonomy node.

    Every Deal points at exactly one row of this table.
    """
    __tablename__ = "categories"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class SourceCategory(Base):
    """
    Site-native taxonomy node, upserted the first time a board category is seen.
    """
    __tablename__ = "source_categories"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    source = Column(String(50), nullable=False)
    source_key = Column(String(255), nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    mapping = relationship("CategoryMapping", uselist=False, back_populates="source_category")

    __table_args__ = (
        UniqueConstraint("source", "source_key", name="uq_source_categories_source_key"),
    )


class CategoryMapping(Base):
    """
    Strict 1:1 bridge between a SourceCategory and a StandardCategory.

    source_category_id is the primary key and category_id is unique, so the
    table can only ever hold a bijection.
    """
    __tablename__ = "category_mappings"

    source_category_id = Column(
        BigInteger,
        ForeignKey("source_categories.id", ondelete="CASCADE"),
        primary_key=True,
        autoincrement=False,
    )
    category_id = Column(BigInteger, ForeignKey("categories.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    source_category = relationship("SourceCategory", back_populates="mapping")
    category = relationship("StandardCategory")

    __table_args__ = (
        Index("uq_category_mappings_category", "category_id", unique=True),
    )
