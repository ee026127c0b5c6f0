"""
Page Fetcher: bounded, throttled detail-page fetching with URL-variant fallback.

Per target the fetch is an explicit state machine::

    PENDING -> ATTEMPTING(variant, attempt) -> SUCCESS
                                            -> ATTEMPTING(variant, attempt + 1)
                                            -> NEXT_VARIANT -> ATTEMPTING(variant + 1, 1)
                                            -> EXHAUSTED

Retries within a variant and the fallback across variants are sequential.
A target that ends EXHAUSTED becomes a failure record; the batch goes on.
"""

import asyncio
import enum
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, List, Optional, Protocol, Sequence, Union

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from core.config import PipelineConfig
from core.exceptions import FetchFailure, PageLoadTimeout, PipelineException
from ingestion.rate_limiter import StartThrottle
from ingestion.urls import build_detail_url_variants
from schemas.results import FetchFailureRecord, FetchReport, FetchSuccess, FetchTarget

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122 Safari/537.36"
)
DEFAULT_VIEWPORT = {"width": 1280, "height": 800}
BLOCKED_RESOURCE_TYPES = frozenset({"image", "font", "media"})
WAIT_UNTIL = "domcontentloaded"


# ============================================================================
# Page providers
# ============================================================================

class PageProvider(Protocol):
    """Source of scoped browser pages; the page is closed when the block exits"""

    def page(self) -> AsyncContextManager[Page]:
        ...


class PlaywrightPageProvider:
    """
    Chromium pages from one shared browser context.

    Usage::

        async with PlaywrightPageProvider(config) as provider:
            report = await PageFetcher(config, provider).fetch_all(targets)
    """

    def __init__(self, config: PipelineConfig):
        self.config = config
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def __aenter__(self) -> "PlaywrightPageProvider":
        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(headless=self.config.headless)
        self._context = await self._browser.new_context(
            user_agent=USER_AGENT,
            locale="ko-KR",
            viewport=DEFAULT_VIEWPORT,
        )
        self._context.set_default_timeout(min(30_000, self.config.timeout_ms))
        self._context.set_default_navigation_timeout(self.config.timeout_ms)
        await self._context.route("**/*", self._block_heavy_resources)

        logger.info(f"Browser ready (headless={self.config.headless})")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
        finally:
            if self._pw:
                await self._pw.stop()
            self._context = self._browser = self._pw = None

    @staticmethod
    async def _block_heavy_resources(route: Route) -> None:
        if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
            await route.abort()
        else:
            await route.continue_()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        if self._context is None:
            raise RuntimeError("PlaywrightPageProvider must be used as an async context manager")
        page = await self._context.new_page()
        try:
            yield page
        finally:
            await page.close()


# ============================================================================
# Per-target state machine
# ============================================================================

class FetchState(str, enum.Enum):
    PENDING = "pending"
    ATTEMPTING = "attempting"
    SUCCESS = "success"
    NEXT_VARIANT = "next_variant"
    EXHAUSTED = "exhausted"


class TargetFetchPlan:
    """
    Retry/fallback policy of one target, independent of any I/O.

    The fetcher asks for the current URL, performs the attempt and reports
    the outcome; the plan decides what happens next.
    """

    def __init__(self, target: FetchTarget, variants: Sequence[str], max_retries: int):
        if not variants:
            raise ValueError("a fetch plan needs at least one URL variant")
        self.target = target
        self.variants = list(variants)
        self.max_retries = max(1, max_retries)
        self.state = FetchState.PENDING
        self.variant_index = 0
        self.attempt = 0
        self.attempts_made = 0
        self.last_url: Optional[str] = None
        self.last_error: Optional[str] = None

    @property
    def current_url(self) -> str:
        return self.variants[self.variant_index]

    @property
    def done(self) -> bool:
        return self.state in (FetchState.SUCCESS, FetchState.EXHAUSTED)

    def start(self) -> None:
        if self.state != FetchState.PENDING:
            raise RuntimeError(f"cannot start a plan in state {self.state.value}")
        self.state = FetchState.ATTEMPTING
        self.attempt = 1

    def record_success(self) -> FetchState:
        self._require(FetchState.ATTEMPTING)
        self.attempts_made += 1
        self.last_url = self.current_url
        self.state = FetchState.SUCCESS
        return self.state

    def record_failure(self, error: str) -> FetchState:
        """
        Register a failed attempt.

        Returns:
            ATTEMPTING when the same variant gets another attempt,
            NEXT_VARIANT when the variant is used up but others remain,
            EXHAUSTED when nothing is left
        """
        self._require(FetchState.ATTEMPTING)
        self.attempts_made += 1
        self.last_url = self.current_url
        self.last_error = error

        if self.attempt < self.max_retries:
            self.attempt += 1
        elif self.variant_index + 1 < len(self.variants):
            self.state = FetchState.NEXT_VARIANT
        else:
            self.state = FetchState.EXHAUSTED
        return self.state

    def advance_variant(self) -> None:
        self._require(FetchState.NEXT_VARIANT)
        self.variant_index += 1
        self.attempt = 1
        self.state = FetchState.ATTEMPTING

    def _require(self, state: FetchState) -> None:
        if self.state != state:
            raise RuntimeError(f"expected state {state.value}, plan is {self.state.value}")

    def to_success(self, html: str) -> FetchSuccess:
        return FetchSuccess(
            source_post_id=self.target.source_post_id,
            post_url=self.last_url,
            html=html,
            attempts=self.attempts_made,
        )

    def to_failure(self) -> FetchFailureRecord:
        return FetchFailureRecord(
            source_post_id=self.target.source_post_id,
            last_url=self.last_url or self.current_url,
            error=self.last_error or "detail fetch failed",
            attempts=self.attempts_made,
        )


# ============================================================================
# Fetcher
# ============================================================================

VariantsBuilder = Callable[[FetchTarget], List[str]]


class PageFetcher:
    """
    Fetch detail pages for a batch of targets.

    Ensures:
    - At most concurrency_limit targets in flight
    - At least min_spacing_ms between target starts
    - One scoped page per attempt, released on every exit path
    - Results in target order; failures never abort the batch
    """

    def __init__(
        self,
        config: PipelineConfig,
        page_provider: PageProvider,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.pages = page_provider
        self._sleep = sleep

    def default_variants(self, target: FetchTarget) -> List[str]:
        return build_detail_url_variants(
            target.post_url,
            self.config.desktop_base_url,
            self.config.mobile_base_url,
            self.config.board_mid,
        )

    async def fetch_all(
        self,
        targets: Sequence[FetchTarget],
        variants_builder: Optional[VariantsBuilder] = None,
    ) -> FetchReport:
        report = FetchReport()
        if not targets:
            return report

        build_variants = variants_builder or self.default_variants
        semaphore = asyncio.Semaphore(self.config.concurrency_limit)
        throttle = StartThrottle(self.config.min_spacing_ms / 1000, sleep=self._sleep)

        async def run(target: FetchTarget) -> Union[FetchSuccess, FetchFailureRecord]:
            async with semaphore:
                await throttle.acquire()
                variants = build_variants(target) or [target.post_url]
                return await self.fetch_target(TargetFetchPlan(target, variants, self.config.max_retries))

        logger.info(
            f"Starting detail fetch: {len(targets)} targets "
            f"(concurrency={self.config.concurrency_limit}, spacing={self.config.min_spacing_ms}ms)"
        )

        outcomes = await asyncio.gather(*(run(t) for t in targets))
        for outcome in outcomes:
            if isinstance(outcome, FetchSuccess):
                report.successes.append(outcome)
            else:
                report.failures.append(outcome)

        logger.info(
            f"Detail fetch complete: {len(report.successes)} succeeded, "
            f"{len(report.failures)} failed"
        )
        return report

    async def fetch_target(self, plan: TargetFetchPlan) -> Union[FetchSuccess, FetchFailureRecord]:
        """Drive one plan to SUCCESS or EXHAUSTED"""
        plan.start()

        while not plan.done:
            url = plan.current_url
            try:
                html = await self._load(url, plan)
            except PipelineException as e:
                state = plan.record_failure(e.message)
                logger.warning(
                    f"Detail fetch failed for {plan.target.source_post_id} "
                    f"({url}, attempt {plan.attempts_made}): {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                if state == FetchState.ATTEMPTING:
                    await self._sleep(self.config.retry_pause_ms / 1000)
                elif state == FetchState.NEXT_VARIANT:
                    plan.advance_variant()
                    logger.info(f"Falling back to {plan.current_url} for {plan.target.source_post_id}")
                continue

            plan.record_success()
            return plan.to_success(html)

        failure = plan.to_failure()
        logger.error(
            f"Detail fetch exhausted for {failure.source_post_id} after "
            f"{failure.attempts} attempts (last url: {failure.last_url}): {failure.error}"
        )
        return failure

    async def _load(self, url: str, plan: TargetFetchPlan) -> str:
        context = {
            "source_post_id": plan.target.source_post_id,
            "url": url,
            "attempt": plan.attempt,
        }
        try:
            async with self.pages.page() as page:
                try:
                    await page.goto(url, wait_until=WAIT_UNTIL, timeout=self.config.timeout_ms)
                except PlaywrightTimeoutError as e:
                    raise PageLoadTimeout(
                        f"Navigation exceeded {self.config.timeout_ms}ms",
                        context=context,
                        original_exception=e
                    )

                try:
                    await page.wait_for_selector(
                        self.config.content_selector,
                        timeout=self.config.content_wait_timeout_ms,
                    )
                except PlaywrightTimeoutError:
                    logger.warning(
                        f"Content selector did not appear within "
                        f"{self.config.content_wait_timeout_ms}ms on {url}; using page as loaded"
                    )

                return await page.content()

        except PipelineException:
            raise
        except Exception as e:
            raise FetchFailure(
                f"Detail page could not be loaded: {e}",
                context=context,
                original_exception=e
            )
