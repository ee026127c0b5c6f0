"""
Normalize extracted list/detail data into a DealDraft with Pydantic validation
"""

import re
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from core.exceptions import ParseFailure
from ingestion.urls import extract_domain, normalize_url
from models.base import ShippingType
from schemas.extracted import DetailRecord, ListItem
from schemas.normalized import DealDraft

Number = Union[int, float]


# ============================================================================
# Title
# ============================================================================

_SHOP_PREFIX_RE = re.compile(r"^\s*\[[^\]]+\]\s*")
_AFFILIATE_SUFFIX_RE = re.compile(r"\s*\[[^\]]*제휴\s*링크[^\]]*\]\s*$")
_TRAILING_PAREN_RE = re.compile(r"\s*\(([^()]*)\)\s*$")

_CURRENCY_MARKERS = ("원", "만원", "달러", "usd", "krw", "₩", "$")
_SHIPPING_MARKERS = ("무료", "무배", "유료", "배송", "착불", "직배", "shipping")


def strip_shop_prefix(title: str) -> str:
    """Remove a leading [shop] tag and a trailing [제휴 링크] marker"""
    without_prefix = _SHOP_PREFIX_RE.sub("", title, count=1).strip()
    return _AFFILIATE_SUFFIX_RE.sub("", without_prefix).strip()


def _looks_like_price(inner: str) -> bool:
    return any(ch.isdigit() for ch in inner) and any(m in inner for m in _CURRENCY_MARKERS)


def _looks_like_shipping(inner: str) -> bool:
    return any(m in inner for m in _SHIPPING_MARKERS)


def strip_trailing_price_shipping(title: str) -> str:
    """Drop trailing '(19,900원)' / '(무료배송)' groups, repeatedly"""
    result = title.strip()
    while True:
        match = _TRAILING_PAREN_RE.search(result)
        if not match:
            break
        inner = match.group(1).strip().lower()
        if not (_looks_like_price(inner) or _looks_like_shipping(inner)):
            break
        result = result[:match.start()].strip()
    return result


def normalize_deal_title(title: str) -> str:
    return strip_trailing_price_shipping(strip_shop_prefix(title))


# ============================================================================
# Price
# ============================================================================

_AMOUNT_RE = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(만)?")
_RANGE_RE = re.compile(r"\s*[~〜～]\s*")


def _parse_amount(text: str) -> Optional[Number]:
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    digits = match.group(1).replace(",", "")
    try:
        value = float(digits)
    except ValueError:
        return None
    if match.group(2):
        value *= 10000
    return int(value) if value.is_integer() else value


def parse_price(text: Optional[str]) -> Optional[Number]:
    """
    Parse a price string.

    "19,900원" -> 19900, "10000~15000" -> 10000 (minimum of the range,
    or whichever endpoint parses), no digits -> None.
    """
    if not text:
        return None

    parts = _RANGE_RE.split(text.strip(), maxsplit=1)
    if len(parts) == 2:
        amounts = [a for a in (_parse_amount(p) for p in parts) if a is not None]
        return min(amounts) if amounts else None

    return _parse_amount(text)


# ============================================================================
# Shipping
# ============================================================================

# Free shipping that depends on a spend threshold or a membership
CONDITIONAL_FREE_PATTERNS: Tuple[re.Pattern, ...] = (
    re.compile(r"\d[\d,]*\s*(?:만\s*)?원?\s*이상\s*(?:구매\s*시?\s*|주문\s*시?\s*)?무료"),
    re.compile(r"조건부\s*무료"),
    re.compile(r"(?:와우|멤버십|멤버쉽|회원|클럽|프라임|유니버스|wow)\s*(?:회원\s*)?(?:한정\s*|전용\s*)?무료"),
    # condition after the free keyword: "무료배송(와우회원)", "무료배송 (3만원 이상)"
    re.compile(r"무료\s*(?:배송)?[^\d)]{0,4}\d[\d,]*\s*(?:만\s*)?원?\s*이상"),
    re.compile(r"무료\s*(?:배송)?\s*\(?[^)]{0,10}?(?:와우|멤버십|멤버쉽|회원|클럽|프라임|wow)"),
    re.compile(r"free\s+(?:shipping\s+)?(?:over|above|for\s+members)"),
)

FREE_KEYWORDS: Tuple[str, ...] = ("무료", "무배", "free")
PAID_KEYWORDS: Tuple[str, ...] = ("유료", "착불", "유배", "paid")

# Title is a weaker signal: only explicit shipping phrases count
TITLE_FREE_KEYWORDS: Tuple[str, ...] = ("무료배송", "무배", "free shipping")
TITLE_PAID_KEYWORDS: Tuple[str, ...] = ("유료배송", "착불")

_TRAILING_WON_RE = re.compile(r"(\d[\d,]*)\s*원?\s*\)?\s*$")


def is_conditional_free(text: str) -> bool:
    lowered = text.lower()
    return any(p.search(lowered) for p in CONDITIONAL_FREE_PATTERNS)


def _classify(text: Optional[str], from_title: bool = False) -> Optional[ShippingType]:
    """Classification of one text, or None when the text says nothing"""
    if not text:
        return None
    lowered = text.strip().lower()
    if not lowered:
        return None

    if is_conditional_free(lowered):
        return ShippingType.UNKNOWN

    free_keywords = TITLE_FREE_KEYWORDS if from_title else FREE_KEYWORDS
    paid_keywords = TITLE_PAID_KEYWORDS if from_title else PAID_KEYWORDS

    if any(k in lowered for k in free_keywords):
        return ShippingType.FREE
    if any(k in lowered for k in paid_keywords):
        return ShippingType.PAID

    if from_title:
        return None

    match = _TRAILING_WON_RE.search(lowered)
    if match:
        amount = int(match.group(1).replace(",", ""))
        return ShippingType.FREE if amount == 0 else ShippingType.PAID

    return None


def classify_shipping(shipping_text: Optional[str], title: Optional[str] = None) -> ShippingType:
    """
    Map shipping text to FREE / PAID / UNKNOWN.

    Conditional free shipping ("5만원 이상 무료", membership-only free) is
    UNKNOWN. When the shipping text is missing or undecided the title's
    explicit shipping phrases are consulted.
    """
    decided = _classify(shipping_text)
    if decided is not None:
        return decided
    decided = _classify(title, from_title=True)
    return decided if decided is not None else ShippingType.UNKNOWN


# ============================================================================
# Sold out
# ============================================================================

SOLD_OUT_KEYWORDS: Tuple[str, ...] = ("품절", "sold out", "soldout", "마감", "종료")


def detect_sold_out(*candidates: Optional[str]) -> bool:
    for value in candidates:
        if not value:
            continue
        lowered = value.lower()
        if any(k in lowered for k in SOLD_OUT_KEYWORDS):
            return True
    return False


# ============================================================================
# Normalizer
# ============================================================================

class DealNormalizer:
    """
    Normalize one crawled post (list row + detail page) into a DealDraft.

    Handles:
    - Title cleanup
    - Price / shipping / sold-out parsing
    - Purchase link normalization
    - Field precedence (detail page wins over list row)
    """

    def __init__(self, base_url: Optional[str] = None):
        self.base_url = base_url

    def normalize(self, item: ListItem, detail: DetailRecord) -> DealDraft:
        """
        Normalize a list/detail pair.

        Raises:
            ParseFailure: If the combined data does not form a valid draft
        """
        source_title = (detail.title or item.title).strip()
        title = normalize_deal_title(source_title) or source_title

        purchase_url = normalize_url(detail.deal_url, self.base_url)
        purchase_domain = extract_domain(purchase_url)
        if purchase_url and not purchase_domain:
            purchase_url = None

        try:
            return DealDraft(
                source=item.source,
                source_post_id=item.source_post_id,
                post_url=item.post_url,
                title=title,
                source_title=source_title,
                price=parse_price(detail.price or item.price_text),
                shipping_type=classify_shipping(detail.shipping or item.shipping_text, title=source_title),
                sold_out=detect_sold_out(detail.title, item.title, detail.summary_text),
                thumbnail_url=detail.thumbnail_url or item.thumbnail_url,
                list_thumbnail_url=item.thumbnail_url,
                raw_shop_name=detail.mall or item.shop_text,
                source_category_key=item.source_category_key or detail.source_category_key,
                source_category_name=item.source_category_name or detail.category,
                summary_text=detail.summary_text,
                purchase_url=purchase_url,
                purchase_domain=purchase_domain,
                views=detail.view_count,
                votes=detail.upvote_count,
                comments=detail.comment_count,
            )
        except ValidationError as e:
            raise ParseFailure(
                "Extracted data does not form a valid deal",
                context={
                    "source": item.source,
                    "source_post_id": item.source_post_id,
                    "field_errors": [err["loc"] for err in e.errors()],
                },
                original_exception=e
            )
