"""
Hot-deal ingestion pipeline components.

Modules:
    base: SourceAdapter contract and collaborator protocols
    urls: URL normalization and detail-page URL variants
    rules: Keyword rules for category inference
    fetcher: Rate-limited headless detail-page fetcher
    category_resolver: mapping -> inference -> default category cascade
    reconciler: Per-item Deal/DealSource/link/snapshot/raw persistence
    runner: Crawl orchestrator (list -> fetch -> parse -> reconcile)
    affiliate: Affiliate conversion batch over the link ledger
    refresher: Metrics and subcategory refresh jobs
    scheduler: APScheduler integration for periodic jobs

Subpackages:
    transformers: Normalization of extracted fields and subcategory rules
    loaders: Repositories over the deal tables

Usage:
    from ingestion.fetcher import PageFetcher, PlaywrightPageProvider
    from ingestion.runner import CrawlRunner

    async with PlaywrightPageProvider(config) as provider:
        fetcher = PageFetcher(config, provider)
        stats = await CrawlRunner(session, config, fetcher).run(adapter)

Error Handling:
    Per-item failures are returned as ItemResult values and counted in the
    run statistics; only configuration errors and list-level failures
    propagate. All exceptions derive from core.exceptions.PipelineException.
"""

__all__ = [
    "SourceAdapter",
    "PageFetcher",
    "PlaywrightPageProvider",
    "CategoryResolver",
    "DealReconciler",
    "CrawlRunner",
    "AffiliateConverter",
    "MetricsRefresher",
    "SubcategoryRefresher",
    "PipelineScheduler",
]
