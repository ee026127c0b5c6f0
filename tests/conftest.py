"""
Pytest configuration and fixtures
"""

import json
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Union

import pytest
import pytest_asyncio
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from core.config import PipelineConfig
from ingestion.base import SourceAdapter
from ingestion.loaders.category_repository import CategoryRepository
from models.base import Base
from schemas.extracted import ListItem

# Test database URL (in-memory SQLite unless overridden)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")

SEED_CATEGORIES = [
    "ELECTRONICS", "LIFE", "BABY", "FASHION", "MOBILE", "GAME",
    "GIFT", "FOOD", "HOME", "BEAUTY", "HEALTH", "ETC",
]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,  # one shared in-memory database
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=NullPool,  # Disable connection pooling for tests
        )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables after test
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_maker(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def seeded_categories(db_session) -> Dict[str, int]:
    """Standard categories by name -> id"""
    repo = CategoryRepository(db_session)
    ids = {}
    for name in SEED_CATEGORIES:
        ids[name] = await repo.get_or_create_by_name(name)
    await db_session.commit()
    return ids


@pytest.fixture
def pipeline_config(seeded_categories) -> PipelineConfig:
    """Fast config: no spacing or retry pauses, default category ETC"""
    return PipelineConfig(
        default_category_id=seeded_categories["ETC"],
        concurrency_limit=2,
        min_spacing_ms=0,
        max_retries=2,
        retry_pause_ms=0,
        timeout_ms=1000,
        content_wait_timeout_ms=500,
        base_urls={
            "desktop": "https://www.fmkorea.com",
            "mobile": "https://m.fmkorea.com",
        },
        batch_sizes={"affiliate": 2, "refresh": 10, "subcategory": 2},
    )


# ============================================================================
# Fake browser
# ============================================================================

Response = Union[str, Exception, List[Union[str, Exception]]]


class FakePage:
    """Stands in for a Playwright page: goto() looks the URL up in responses"""

    def __init__(self, provider: "FakePageProvider"):
        self.provider = provider
        self.url: Optional[str] = None
        self._html = ""
        self.closed = False

    async def goto(self, url, wait_until=None, timeout=None):
        self.url = url
        self.provider.visited.append(url)
        response = self.provider.responses.get(url, PlaywrightTimeoutError(f"Timeout loading {url}"))
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, Exception):
            raise response
        self._html = response

    async def wait_for_selector(self, selector, timeout=None):
        if self.url in self.provider.slow_content:
            raise PlaywrightTimeoutError(f"Timeout waiting for {selector}")

    async def content(self) -> str:
        return self._html


class FakePageProvider:
    """PageProvider over a url -> html | exception | [sequence per attempt] table"""

    def __init__(self, responses: Dict[str, Response], slow_content: Sequence[str] = ()):
        self.responses = dict(responses)
        self.slow_content = set(slow_content)
        self.visited: List[str] = []
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def page(self):
        self.opened += 1
        page = FakePage(self)
        try:
            yield page
        finally:
            page.closed = True
            self.closed += 1

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


@pytest.fixture
def fake_provider_cls():
    return FakePageProvider


# ============================================================================
# Fake board
# ============================================================================

class FakeBoardAdapter(SourceAdapter):
    """Board whose 'detail page' markup is the JSON of the DetailRecord"""

    source = "fmkorea"

    def __init__(self, rows: Sequence[Union[ListItem, dict]] = ()):
        self.rows = list(rows)

    async def list_items(self):
        for row in self.rows:
            yield row

    def extract_detail(self, html, item):
        return json.loads(html)


@pytest.fixture
def board_adapter_cls():
    return FakeBoardAdapter


@pytest.fixture
def detail_html():
    """Render a detail 'page' for FakeBoardAdapter"""
    def render(**fields) -> str:
        return json.dumps(fields, ensure_ascii=False)
    return render
