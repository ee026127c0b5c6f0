"""
Unit tests for the page fetcher, its per-target state machine and the start throttle
"""

import asyncio

import pytest
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.config import PipelineConfig
from ingestion.fetcher import FetchState, PageFetcher, TargetFetchPlan
from ingestion.rate_limiter import StartThrottle
from schemas.results import FetchFailureRecord, FetchSuccess, FetchTarget

DESKTOP = "https://www.fmkorea.com/123"
INDEX = "https://www.fmkorea.com/index.php?mid=hotdeal&document_srl=123"
MOBILE = "https://m.fmkorea.com/123"


def make_config(**overrides):
    values = dict(
        default_category_id=1,
        concurrency_limit=2,
        min_spacing_ms=0,
        max_retries=2,
        retry_pause_ms=0,
        timeout_ms=1000,
        content_wait_timeout_ms=500,
    )
    values.update(overrides)
    return PipelineConfig(**values)


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TestTargetFetchPlan:
    """Test the retry/fallback state machine without I/O"""

    def _plan(self, variants=(DESKTOP, MOBILE), max_retries=2):
        return TargetFetchPlan(FetchTarget(source_post_id="123", post_url=DESKTOP), variants, max_retries)

    def test_retries_then_next_variant_then_exhausted(self):
        plan = self._plan()
        plan.start()

        assert plan.record_failure("timeout") == FetchState.ATTEMPTING
        assert plan.attempt == 2
        assert plan.record_failure("timeout") == FetchState.NEXT_VARIANT

        plan.advance_variant()
        assert plan.current_url == MOBILE
        assert plan.attempt == 1

        plan.record_failure("timeout")
        assert plan.record_failure("boom") == FetchState.EXHAUSTED
        assert plan.done

        failure = plan.to_failure()
        assert failure.last_url == MOBILE
        assert failure.error == "boom"
        assert failure.attempts == 4

    def test_success_attributed_to_current_variant(self):
        plan = self._plan(max_retries=1)
        plan.start()
        assert plan.record_failure("timeout") == FetchState.NEXT_VARIANT
        plan.advance_variant()
        assert plan.record_success() == FetchState.SUCCESS

        success = plan.to_success("<html/>")
        assert success.post_url == MOBILE
        assert success.attempts == 2

    def test_illegal_transitions(self):
        plan = self._plan()
        with pytest.raises(RuntimeError):
            plan.record_success()
        plan.start()
        with pytest.raises(RuntimeError):
            plan.advance_variant()

    def test_needs_a_variant(self):
        with pytest.raises(ValueError):
            self._plan(variants=())


class TestPageFetcher:
    """Test fetching against a fake page provider"""

    @pytest.mark.asyncio
    async def test_mobile_fallback_success(self, fake_provider_cls):
        provider = fake_provider_cls({
            DESKTOP: PlaywrightTimeoutError("timeout"),
            INDEX: RuntimeError("net::ERR_CONNECTION_RESET"),
            MOBILE: "<html>mobile</html>",
        })
        fetcher = PageFetcher(make_config(), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all([FetchTarget(source_post_id="123", post_url=DESKTOP)])

        assert report.failures == []
        assert len(report.successes) == 1
        success = report.successes[0]
        assert success.post_url == MOBILE
        assert success.html == "<html>mobile</html>"
        assert success.attempts == 5
        assert provider.visited == [DESKTOP, DESKTOP, INDEX, INDEX, MOBILE]

    @pytest.mark.asyncio
    async def test_exhausted_target_is_a_failure_record(self, fake_provider_cls):
        provider = fake_provider_cls({})
        fetcher = PageFetcher(make_config(max_retries=1), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all([FetchTarget(source_post_id="123", post_url=DESKTOP)])

        assert report.successes == []
        assert len(report.failures) == 1
        failure = report.failures[0]
        assert isinstance(failure, FetchFailureRecord)
        assert failure.last_url == MOBILE
        assert failure.attempts == 3

    @pytest.mark.asyncio
    async def test_pages_released_on_every_path(self, fake_provider_cls):
        provider = fake_provider_cls({
            DESKTOP: [RuntimeError("boom"), "<html>ok</html>"],
        })
        fetcher = PageFetcher(make_config(), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all([
            FetchTarget(source_post_id="123", post_url=DESKTOP),
            FetchTarget(source_post_id="999", post_url="https://www.fmkorea.com/999"),
        ])

        assert len(report.successes) == 1
        assert len(report.failures) == 1
        assert provider.opened == provider.closed
        assert provider.opened == 2 + 6

    @pytest.mark.asyncio
    async def test_retry_pause_between_attempts_only(self, fake_provider_cls):
        provider = fake_provider_cls({DESKTOP: [RuntimeError("boom"), "<html>ok</html>"]})
        sleep = RecordingSleep()
        fetcher = PageFetcher(make_config(retry_pause_ms=800), provider, sleep=sleep)

        report = await fetcher.fetch_all([FetchTarget(source_post_id="123", post_url=DESKTOP)])

        assert report.successes[0].attempts == 2
        assert sleep.calls == [0.8]

    @pytest.mark.asyncio
    async def test_content_wait_timeout_keeps_page(self, fake_provider_cls):
        provider = fake_provider_cls({DESKTOP: "<html>partial</html>"}, slow_content=[DESKTOP])
        fetcher = PageFetcher(make_config(), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all([FetchTarget(source_post_id="123", post_url=DESKTOP)])

        assert report.successes[0].html == "<html>partial</html>"
        assert report.successes[0].attempts == 1

    @pytest.mark.asyncio
    async def test_results_keep_target_order(self, fake_provider_cls):
        urls = [f"https://www.fmkorea.com/{i}" for i in range(1, 6)]
        provider = fake_provider_cls({url: f"<html>{url}</html>" for url in urls})
        fetcher = PageFetcher(make_config(concurrency_limit=3), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all([
            FetchTarget(source_post_id=url.rsplit("/", 1)[1], post_url=url) for url in urls
        ])

        assert [s.source_post_id for s in report.successes] == ["1", "2", "3", "4", "5"]

    @pytest.mark.asyncio
    async def test_custom_variants_builder(self, fake_provider_cls):
        provider = fake_provider_cls({"https://other.example.com/p/1": "<html/>"})
        fetcher = PageFetcher(make_config(), provider, sleep=RecordingSleep())

        report = await fetcher.fetch_all(
            [FetchTarget(source_post_id="1", post_url="https://other.example.com/p/1")],
            variants_builder=lambda target: [target.post_url],
        )

        assert isinstance(report.successes[0], FetchSuccess)
        assert provider.visited == ["https://other.example.com/p/1"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, fake_provider_cls):
        report = await PageFetcher(make_config(), fake_provider_cls({})).fetch_all([])
        assert report.successes == [] and report.failures == []


class TestStartThrottle:
    """Test minimum spacing between fetch starts"""

    @pytest.mark.asyncio
    async def test_waits_for_remaining_interval(self):
        now = [100.0]
        sleep = RecordingSleep()
        throttle = StartThrottle(2.5, sleep=sleep, clock=lambda: now[0])

        await throttle.acquire()
        now[0] = 101.0
        await throttle.acquire()

        assert sleep.calls == [pytest.approx(1.5)]

    @pytest.mark.asyncio
    async def test_no_wait_after_interval(self):
        now = [100.0]
        sleep = RecordingSleep()
        throttle = StartThrottle(2.5, sleep=sleep, clock=lambda: now[0])

        await throttle.acquire()
        now[0] = 103.0
        await throttle.acquire()

        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_concurrent_starts_are_serialized(self):
        starts = []
        throttle = StartThrottle(0.01)

        async def start(i):
            await throttle.acquire()
            starts.append(asyncio.get_running_loop().time())

        await asyncio.gather(*(start(i) for i in range(3)))

        assert len(starts) == 3
        assert starts[2] - starts[0] >= 0.015
