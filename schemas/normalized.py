"""
Pydantic schemas for normalized deal data with validation
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from models.base import ShippingType


class DealDraft(BaseModel):
    """
    Normalized view of one crawled post, ready to be reconciled.

    Built from a ListItem + DetailRecord pair by DealNormalizer. Everything
    here is computed without touching the database; category, shop-name
    lookup and subcategory are resolved inside the item's transaction.
    """

    model_config = ConfigDict(use_enum_values=False)

    # Identity
    source: str = Field(..., min_length=1, max_length=50)
    source_post_id: str = Field(..., min_length=1, max_length=100)
    post_url: str = Field(..., min_length=1, max_length=2048)

    # Deal fields
    title: str = Field(..., min_length=1, max_length=500)
    source_title: str = Field(..., min_length=1, max_length=500)
    price: Optional[float] = Field(None, ge=0)
    shipping_type: ShippingType = ShippingType.UNKNOWN
    sold_out: bool = False
    thumbnail_url: Optional[str] = Field(None, max_length=2048)
    list_thumbnail_url: Optional[str] = Field(None, max_length=2048)
    raw_shop_name: Optional[str] = None

    # Category inputs
    source_category_key: Optional[str] = None
    source_category_name: Optional[str] = None
    summary_text: Optional[str] = None

    # Purchase link
    purchase_url: Optional[str] = Field(None, max_length=2048)
    purchase_domain: Optional[str] = Field(None, max_length=255)

    # Metrics
    views: Optional[int] = Field(None, ge=0)
    votes: Optional[int] = Field(None, ge=0)
    comments: Optional[int] = Field(None, ge=0)

    @field_validator("title", "source_title")
    @classmethod
    def clean_title(cls, v):
        """Clean and normalize title"""
        if v:
            v = v.strip()
            if not v:
                raise ValueError("Title cannot be empty after stripping")
        return v
