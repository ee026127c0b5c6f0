"""
Second-level keyword classifier, gated by the resolved top-level category.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from ingestion.rules import normalize_text


@dataclass(frozen=True)
class SubcategoryRule:
    name: str
    keywords: Tuple[str, ...]
    categories: Tuple[str, ...]


_ELECTRONICS = ("ELECTRONICS",)
_GAMES = ("GAME", "ELECTRONICS")
_HOBBY = ("LIFE", "GAME")

# Declaration order is evaluation order; first match wins.
# Padded keywords (" rtx ") only match whole words of the padded text.
SUBCATEGORY_RULES: Tuple[SubcategoryRule, ...] = (
    SubcategoryRule("gpu", ("그래픽카드", "그래픽 카드", " gpu ", " rtx ", " gtx ", " radeon ", " rx "), _ELECTRONICS),
    SubcategoryRule("ssd", ("ssd", "nvme", "m.2", "m2"), _ELECTRONICS),
    SubcategoryRule("monitor", ("모니터", "monitor", "display", "디스플레이"), _ELECTRONICS),
    SubcategoryRule("laptop", ("노트북", "laptop", "macbook", "맥북"), _ELECTRONICS),
    SubcategoryRule(
        "peripherals",
        ("키보드", "마우스", "헤드셋", "헤드폰", "스피커", "웹캠", "마이크", "마우스패드", "게이밍 패드"),
        _ELECTRONICS,
    ),
    SubcategoryRule("pc_game", ("스팀", "steam", "에픽", "epic", "게임키", "game key"), _GAMES),
    SubcategoryRule("console_game", ("닌텐도", "스위치", "switch", "ps5", "ps4", "플스", "xbox", "콘솔"), _GAMES),
    SubcategoryRule("plan", ("요금제", "알뜰폰", "유심", "esim", " skt ", " kt ", "lg u+"), ("MOBILE",)),
    SubcategoryRule("handset", ("아이폰", "갤럭시", "휴대폰", "스마트폰", "핸드폰"), ("MOBILE",)),
    SubcategoryRule(
        "giftcard",
        ("상품권", "기프티콘", "기프트카드", "문화상품권", "구글플레이", "애플기프트"),
        ("GIFT",),
    ),
    SubcategoryRule("pay_point", (" 포인트 ", " 캐시 ", " 적립금 ", " 페이 ", " 페이백 "), ("GIFT",)),
    SubcategoryRule("instant_food", ("즉석", "라면", "컵라면", "즉석밥", "볶음밥", "만두", "밀키트"), ("FOOD",)),
    SubcategoryRule(
        "franchise",
        ("버거킹", "맥도날드", "kfc", "bbq", "bhc", "굽네", "도미노", "피자", "서브웨이", "스타벅스", "투썸", "할리스"),
        ("FOOD",),
    ),
    SubcategoryRule("figure", ("피규어", "figure", "넨도로이드"), _HOBBY),
    SubcategoryRule("plastic_model", ("프라모델", "프라 모델", "건담", "gundam"), _HOBBY),
)


def classify_subcategory(
    category_name: Optional[str],
    *texts: Optional[str],
    rules: Tuple[SubcategoryRule, ...] = SUBCATEGORY_RULES,
) -> Optional[str]:
    """
    Return the first subcategory whose keywords appear in the texts.

    Only rules gated to category_name are considered; without a category
    name there is no subcategory.
    """
    if not category_name:
        return None
    category = category_name.upper()

    text = normalize_text(*texts)
    if not text:
        return None

    for rule in rules:
        if category not in rule.categories:
            continue
        if any(keyword.lower() in text for keyword in rule.keywords):
            return rule.name
    return None
