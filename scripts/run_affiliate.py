"""
Script to convert pending purchase links into affiliate links
"""

import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import AffiliateConfig, settings
from core.database import build_engine, build_session_maker
from core.exceptions import ConfigurationError
from core.logging import setup_logging
from ingestion.affiliate import AffiliateConverter

logger = logging.getLogger(__name__)


async def run_affiliate(config: AffiliateConfig) -> int:
    engine = build_engine()
    SessionLocal = build_session_maker(engine)

    try:
        async with SessionLocal() as session:
            stats = await AffiliateConverter(session, config).run()
        logger.info(
            f"Affiliate conversion finished: candidates={stats.candidates}, "
            f"converted={stats.converted}, skipped={stats.skipped}, failed={stats.failed}"
        )
        return 0
    except Exception as e:
        logger.error(f"Affiliate pipeline error: {str(e)}")
        return 1
    finally:
        await engine.dispose()


def main() -> int:
    setup_logging()
    try:
        config = AffiliateConfig.from_settings(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e.message}", extra={"error_context": e.to_dict()})
        return 1

    return asyncio.run(run_affiliate(config))


if __name__ == "__main__":
    sys.exit(main())
