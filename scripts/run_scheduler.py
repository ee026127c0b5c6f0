"""
Script to run the crawl, affiliate and refresh jobs on their intervals
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import AffiliateConfig, PipelineConfig, settings
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from ingestion.base import load_adapters
from ingestion.scheduler import PipelineScheduler

logger = logging.getLogger(__name__)


async def serve(scheduler: PipelineScheduler):
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


def main() -> int:
    setup_logging()
    try:
        config = PipelineConfig.from_settings(settings)
        adapters = load_adapters(settings.SOURCE_ADAPTERS)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    affiliate_config = None
    try:
        affiliate_config = AffiliateConfig.from_settings(settings)
    except ConfigurationError as e:
        logger.warning(f"Affiliate job disabled: {e.message}")

    try:
        asyncio.run(serve(PipelineScheduler(adapters, config, affiliate_config)))
    except KeyboardInterrupt:
        logger.info("Scheduler interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
