"""
Script to run one crawl for every configured board
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import PipelineConfig, settings
from core.database import build_engine, build_session_maker
from core.exceptions import ConfigurationError, PipelineException
from core.logging import setup_logging
from ingestion.base import load_adapters
from ingestion.fetcher import PageFetcher, PlaywrightPageProvider
from ingestion.runner import CrawlRunner

logger = logging.getLogger(__name__)


async def run_crawl(config: PipelineConfig, adapters) -> int:
    """Crawl every board; returns the process exit code"""
    engine = build_engine()
    SessionLocal = build_session_maker(engine)
    exit_code = 0

    try:
        async with PlaywrightPageProvider(config) as provider:
            fetcher = PageFetcher(config, provider)

            for adapter in adapters:
                try:
                    logger.info(f"Running crawl for source: {adapter.source}")
                    async with SessionLocal() as session:
                        stats = await CrawlRunner(session, config, fetcher).run(adapter)
                    logger.info(f"Crawl completed for {adapter.source}: {stats.summary()}")
                except PipelineException as e:
                    logger.error(
                        f"Crawl failed for {adapter.source}: {e.message}",
                        extra={"error_context": e.to_dict()}
                    )
                    exit_code = 1
                    continue

        logger.info("All crawl jobs completed")

    except Exception as e:
        logger.error(f"Crawl pipeline error: {str(e)}")
        exit_code = 1
    finally:
        await engine.dispose()

    return exit_code


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Crawl hot-deal boards")
    parser.add_argument(
        "--adapter",
        action="append",
        help="package.module:ClassName (repeatable; defaults to SOURCE_ADAPTERS)",
    )
    args = parser.parse_args(argv)

    setup_logging()
    try:
        config = PipelineConfig.from_settings(settings)
        adapters = load_adapters(",".join(args.adapter) if args.adapter else settings.SOURCE_ADAPTERS)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    return asyncio.run(run_crawl(config, adapters))


if __name__ == "__main__":
    sys.exit(main())
