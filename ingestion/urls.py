"""
URL helpers shared by the fetcher, reconciler and affiliate converter.
"""

import re
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urljoin, urlsplit, urlunsplit

_DOC_ID_PATH_RE = re.compile(r"/(\d+)(?:$|[?#])")
_DOC_ID_QUERY_RE = re.compile(r"^\d+$")


def normalize_url(href: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """
    Turn an href into an absolute http(s) URL.

    Protocol-relative hrefs get https, relative hrefs are resolved against
    base_url; anything else that is not http(s) yields None.
    """
    if not href:
        return None
    trimmed = href.strip()
    if not trimmed:
        return None

    if trimmed.startswith("//"):
        trimmed = f"https:{trimmed}"
    elif not trimmed.lower().startswith(("http://", "https://")):
        if not base_url:
            return None
        trimmed = urljoin(base_url, trimmed)

    parts = urlsplit(trimmed)
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        return None

    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, parts.fragment))


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of an absolute URL, lower-cased"""
    if not url:
        return None
    hostname = urlsplit(url.strip()).hostname
    return hostname.lower() if hostname else None


def extract_document_id(url: str) -> Optional[str]:
    """Board document id from either /<id> paths or ?document_srl=<id>"""
    match = _DOC_ID_PATH_RE.search(url)
    if match:
        return match.group(1)

    values = parse_qs(urlsplit(url).query).get("document_srl", [])
    if values and _DOC_ID_QUERY_RE.match(values[0]):
        return values[0]
    return None


def make_document_url(doc_id: str, base_url: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", doc_id)


def make_index_url(doc_id: str, base_url: str, mid: str) -> str:
    query = urlencode({"mid": mid, "document_srl": doc_id})
    return f"{base_url.rstrip('/')}/index.php?{query}"


def build_detail_url_variants(
    post_url: str,
    base_url: str,
    mobile_base_url: Optional[str] = None,
    mid: str = "hotdeal",
) -> List[str]:
    """
    Prioritized, de-duplicated URL variants for one post.

    Order: the canonical post URL, the desktop /<id> URL, the index-style
    URL, then the mobile-domain URL.
    """
    variants: List[str] = []

    canonical = normalize_url(post_url, base_url)
    if canonical:
        variants.append(canonical)

    doc_id = extract_document_id(canonical or post_url) or extract_document_id(post_url)
    if doc_id:
        variants.append(make_document_url(doc_id, base_url))
        variants.append(make_index_url(doc_id, base_url, mid))
        if mobile_base_url:
            variants.append(make_document_url(doc_id, mobile_base_url))

    deduped: List[str] = []
    seen = set()
    for variant in variants:
        if variant and variant not in seen:
            seen.add(variant)
            deduped.append(variant)

    if not deduped:
        return [post_url]
    return deduped
