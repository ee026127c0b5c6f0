"""
Unit tests for the redirect affiliate transformer
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from core.exceptions import AffiliateConversionError
from ingestion.affiliate import RedirectAffiliateTransformer


class TestRedirectAffiliateTransformer:

    @pytest.mark.asyncio
    async def test_wraps_url_with_tracking_id(self):
        transformer = RedirectAffiliateTransformer("https://go.example.com/r", tracking_id="hd-01")

        result = await transformer.transform("https://link.coupang.com/a/abc?x=1&y=2")

        parts = urlsplit(result)
        assert parts.netloc == "go.example.com"
        assert parts.path == "/r"
        query = parse_qs(parts.query)
        assert query["redirect"] == ["https://link.coupang.com/a/abc?x=1&y=2"]
        assert query["tracking_id"] == ["hd-01"]

    @pytest.mark.asyncio
    async def test_existing_base_params_kept(self):
        transformer = RedirectAffiliateTransformer("https://go.example.com/r?channel=deals&redirect=old")

        result = await transformer.transform("https://shop.example.com/p/1")

        query = parse_qs(urlsplit(result).query)
        assert query["channel"] == ["deals"]
        assert query["redirect"] == ["https://shop.example.com/p/1"]
        assert "tracking_id" not in query

    @pytest.mark.asyncio
    async def test_deterministic(self):
        transformer = RedirectAffiliateTransformer("https://go.example.com/r", tracking_id="t")
        url = "https://shop.example.com/p/1"
        assert await transformer.transform(url) == await transformer.transform(url)

    @pytest.mark.asyncio
    async def test_invalid_base(self):
        transformer = RedirectAffiliateTransformer("go.example.com/r")
        with pytest.raises(AffiliateConversionError):
            await transformer.transform("https://shop.example.com/p/1")
