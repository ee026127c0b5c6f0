"""
Script to refresh metrics of recent posts and re-run subcategory rules
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
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from ingestion.base import load_adapters
from ingestion.fetcher import PageFetcher, PlaywrightPageProvider
from ingestion.refresher import MetricsRefresher, SubcategoryRefresher

logger = logging.getLogger(__name__)


async def run_refresh(config: PipelineConfig, adapters, subcategory: bool, metrics: bool) -> int:
    engine = build_engine()
    SessionLocal = build_session_maker(engine)
    exit_code = 0

    try:
        if metrics:
            async with PlaywrightPageProvider(config) as provider:
                fetcher = PageFetcher(config, provider)
                for adapter in adapters:
                    try:
                        async with SessionLocal() as session:
                            stats = await MetricsRefresher(session, config, fetcher).run(adapter)
                        logger.info(f"Metrics refresh for {adapter.source}: {stats.model_dump()}")
                    except Exception as e:
                        logger.error(f"Metrics refresh failed for {adapter.source}: {str(e)}")
                        exit_code = 1

        if subcategory:
            async with SessionLocal() as session:
                stats = await SubcategoryRefresher(session, config).run()
            logger.info(f"Subcategory refresh: scanned={stats.scanned}, updated={stats.updated}")

    except Exception as e:
        logger.error(f"Refresh pipeline error: {str(e)}")
        exit_code = 1
    finally:
        await engine.dispose()

    return exit_code


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Refresh deal metrics and subcategories")
    parser.add_argument(
        "--adapter",
        action="append",
        help="package.module:ClassName (repeatable; defaults to SOURCE_ADAPTERS)",
    )
    parser.add_argument("--subcategory", action="store_true", help="also re-run subcategory rules")
    parser.add_argument("--subcategory-only", action="store_true", help="skip the metrics refresh")
    args = parser.parse_args(argv)

    setup_logging()
    adapters = []
    try:
        config = PipelineConfig.from_settings(settings)
        if not args.subcategory_only:
            adapters = load_adapters(",".join(args.adapter) if args.adapter else settings.SOURCE_ADAPTERS)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    return asyncio.run(run_refresh(
        config,
        adapters,
        subcategory=args.subcategory or args.subcategory_only,
        metrics=not args.subcategory_only,
    ))


if __name__ == "__main__":
    sys.exit(main())
