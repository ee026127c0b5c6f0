"""
Ordered keyword/domain rule table used to infer a top-level category.

Rules are evaluated in declaration order. A rule scores
``include hits + 2 * domain-hint hits`` (0 when any exclude keyword
matches); the strictly highest positive score wins and ties keep the
earlier rule, so reordering RULES changes results.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple

_WHITESPACE_RE = re.compile(r"\s+")

DOMAIN_HINT_WEIGHT = 2


@dataclass(frozen=True)
class CategoryRule:
    category_name: str
    include_keywords: Tuple[str, ...]
    exclude_keywords: Tuple[str, ...] = ()
    domain_hints: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RuleMatch:
    category_name: str
    score: int


RULES: Tuple[CategoryRule, ...] = (
    CategoryRule(
        "HEALTH",
        include_keywords=(
            "건강", "영양제", "비타민", "유산균", "오메가", "마스크", "의료기기", "혈압계",
            "건강식품", "프로바이오틱", "프로바이오틱스", "오메가3", "오메가 3",
        ),
        exclude_keywords=("마스크팩",),
    ),
    CategoryRule(
        "BABY",
        include_keywords=("기저귀", "분유", "젖병", "유아", "아기", "유모차", "카시트", "쪽쪽이", "이유식"),
    ),
    CategoryRule(
        "BEAUTY",
        include_keywords=(
            "화장품", "스킨", "로션", "선크림", "쿠션", "향수", "미스트", "에센스", "크림",
            "클렌저", "샴푸", "바디워시", "마스크팩",
        ),
    ),
    CategoryRule(
        "FOOD",
        include_keywords=(
            "라면", "즉석밥", "만두", "과자", "커피", "식품", "먹거리", "음식", "스낵", "밀키트", "간편식",
        ),
    ),
    CategoryRule(
        "GIFT",
        include_keywords=("상품권", "기프티콘", "문화상품권", "구글플레이", "애플기프트", "기프트카드", "교환권"),
        domain_hints=("gift", "gifticon", "giftishow", "payco", "kakaogift"),
    ),
    CategoryRule(
        "MOBILE",
        include_keywords=("요금제", "알뜰폰", "유심", "esim", "갤럭시", "아이폰", "휴대폰", "스마트폰"),
        domain_hints=("skt", "kt", "lguplus", "uplus"),
    ),
    CategoryRule(
        "GAME",
        include_keywords=("게임", "스팀", "닌텐도", "ps5", "xbox", "플스", "스위치", "steam", "nintendo"),
        domain_hints=("steampowered", "nintendo", "playstation", "xbox"),
    ),
)


def normalize_text(*parts: Optional[str]) -> str:
    """Lower-case, collapse whitespace and pad with spaces; '' when there is no text"""
    joined = " ".join(p for p in parts if p)
    collapsed = _WHITESPACE_RE.sub(" ", joined.lower()).strip()
    if not collapsed:
        return ""
    return f" {collapsed} "


def _token(keyword: str) -> str:
    return keyword.lower().strip()


def _count_domain_hits(domains: Sequence[str], hints: Sequence[str]) -> int:
    # at most one hit per domain
    count = 0
    for domain in domains:
        for hint in hints:
            normalized = _token(hint)
            if normalized and normalized in domain:
                count += 1
                break
    return count


def score_rule(rule: CategoryRule, text: str, domains: Sequence[str] = ()) -> int:
    if any(_token(k) in text for k in rule.exclude_keywords):
        return 0
    include_hits = sum(1 for k in rule.include_keywords if _token(k) in text)
    return include_hits + DOMAIN_HINT_WEIGHT * _count_domain_hits(domains, rule.domain_hints)


def infer_category(
    title: Optional[str],
    body: Optional[str] = None,
    domains: Optional[Iterable[Optional[str]]] = None,
    rules: Sequence[CategoryRule] = RULES,
) -> Optional[RuleMatch]:
    """Best-scoring rule for the given text and purchase-link domains, or None"""
    text = normalize_text(title, body)
    if not text:
        return None

    normalized_domains = [d.lower().strip() for d in (domains or []) if d and d.strip()]

    best: Optional[RuleMatch] = None
    for rule in rules:
        score = score_rule(rule, text, normalized_domains)
        if score <= 0:
            continue
        if best is None or score > best.score:
            best = RuleMatch(category_name=rule.category_name, score=score)
    return best
