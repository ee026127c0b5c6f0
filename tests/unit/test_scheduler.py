import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from core.config import AffiliateConfig, PipelineConfig
from ingestion.scheduler import PipelineScheduler


def make_session_maker():
    session = AsyncMock()
    maker = MagicMock()
    maker.return_value.__aenter__.return_value = session
    return maker


class FakeProvider:
    def __init__(self, config):
        self.config = config

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None


def make_adapter(source):
    adapter = MagicMock()
    adapter.source = source
    return adapter


@pytest.mark.asyncio
async def test_scheduler_registers_jobs():
    scheduler = PipelineScheduler(
        [make_adapter("fmkorea")],
        PipelineConfig(default_category_id=1),
        AffiliateConfig(redirect_base="https://go.example.com/r"),
        session_maker=make_session_maker(),
        page_provider_factory=FakeProvider,
    )
    assert scheduler.engine is None

    scheduler.start()
    try:
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert job_ids == {"crawl_job", "affiliate_job", "refresh_job"}
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_affiliate_job_skipped_without_config():
    scheduler = PipelineScheduler(
        [],
        PipelineConfig(default_category_id=1),
        session_maker=make_session_maker(),
        page_provider_factory=FakeProvider,
    )
    scheduler.start()
    try:
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert "affiliate_job" not in job_ids
    finally:
        await scheduler.stop()


@pytest.mark.asyncio
async def test_crawl_job_runs_every_adapter_and_survives_failures():
    with patch("ingestion.scheduler.CrawlRunner") as mock_runner_cls:
        mock_runner = MagicMock()
        mock_runner.run = AsyncMock(side_effect=[RuntimeError("board down"), MagicMock()])
        mock_runner_cls.return_value = mock_runner

        scheduler = PipelineScheduler(
            [make_adapter("fmkorea"), make_adapter("ruliweb")],
            PipelineConfig(default_category_id=1),
            session_maker=make_session_maker(),
            page_provider_factory=FakeProvider,
        )

        await scheduler.run_crawl_job()

        assert mock_runner.run.await_count == 2


@pytest.mark.asyncio
async def test_refresh_job_runs_metrics_then_subcategory():
    with patch("ingestion.scheduler.MetricsRefresher") as mock_metrics_cls, \
            patch("ingestion.scheduler.SubcategoryRefresher") as mock_sub_cls:
        mock_metrics_cls.return_value.run = AsyncMock()
        mock_sub_cls.return_value.run = AsyncMock()

        scheduler = PipelineScheduler(
            [make_adapter("fmkorea")],
            PipelineConfig(default_category_id=1),
            session_maker=make_session_maker(),
            page_provider_factory=FakeProvider,
        )

        await scheduler.run_refresh_job()

        assert mock_metrics_cls.return_value.run.await_count == 1
        assert mock_sub_cls.return_value.run.await_count == 1
