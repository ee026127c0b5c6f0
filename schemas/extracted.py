"""
Pydantic schemas for the shapes produced by the list/detail extractors.

Extractors are site specific and live outside this package; whatever they
return is validated here before it reaches the reconciler, so a malformed
shape surfaces as a ParseFailure instead of a database error.
"""

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_COUNT_RE = re.compile(r"\d[\d,]*")


class ListItem(BaseModel):
    """One row of a board's hot-deal list page"""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., min_length=1, max_length=50)
    source_post_id: str = Field(..., min_length=1, max_length=100)
    post_url: str = Field(..., min_length=1, max_length=2048)
    title: str = Field(..., min_length=1, max_length=500)
    thumbnail_url: Optional[str] = None
    source_category_key: Optional[str] = None
    source_category_name: Optional[str] = None
    shop_text: Optional[str] = None
    price_text: Optional[str] = None
    shipping_text: Optional[str] = None

    @field_validator("source_post_id", "post_url", "title", mode="before")
    @classmethod
    def strip_required(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator(
        "thumbnail_url", "source_category_key", "source_category_name",
        "shop_text", "price_text", "shipping_text",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        """Extractors often yield empty strings for missing cells"""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class DetailRecord(BaseModel):
    """Structured fields extracted from exactly one post's detail page"""

    title: Optional[str] = None
    category: Optional[str] = None
    source_category_key: Optional[str] = None
    mall: Optional[str] = None
    price: Optional[str] = None
    shipping: Optional[str] = None
    deal_url: Optional[str] = None
    view_count: Optional[int] = Field(None, ge=0)
    upvote_count: Optional[int] = Field(None, ge=0)
    comment_count: Optional[int] = Field(None, ge=0)
    summary_text: Optional[str] = None
    images: List[str] = Field(default_factory=list)

    @field_validator(
        "title", "category", "source_category_key", "mall", "price",
        "shipping", "deal_url", "summary_text",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v

    @field_validator("view_count", "upvote_count", "comment_count", mode="before")
    @classmethod
    def parse_count(cls, v: Any):
        """Accept '1,234' style counters as rendered on the page"""
        if v is None or isinstance(v, int):
            return v
        if isinstance(v, str):
            match = _COUNT_RE.search(v)
            if not match:
                return None
            return int(match.group(0).replace(",", ""))
        return v

    @field_validator("images", mode="before")
    @classmethod
    def clean_images(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v.strip()] if v.strip() else []
        return [str(i).strip() for i in v if i and str(i).strip()]

    @property
    def thumbnail_url(self) -> Optional[str]:
        return self.images[0] if self.images else None
