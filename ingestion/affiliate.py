"""
Affiliate Converter - independent batch over the Link Ledger.

Pages through original links whose deal has no affiliate link yet, asks an
AffiliateTransformer for an affiliate URL and inserts it as a new row for
the same deal. Each candidate is its own transaction.

Concurrent runs: the candidate query is a read-then-write anti-join, so every
conversion transaction re-checks has_affiliate before inserting and, on
PostgreSQL, first takes pg_advisory_xact_lock(deal_id).
"""

import enum
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import AffiliateConfig
from core.exceptions import AffiliateConversionError, PersistFailure, PipelineException
from ingestion.base import AffiliateTransformer
from ingestion.loaders.link_ledger import AffiliateCandidate, LinkLedger
from ingestion.run_tracker import RunTracker
from ingestion.urls import extract_domain, normalize_url
from models.base import JobType, RunStatus
from schemas.results import AffiliateStats
import logging

logger = logging.getLogger(__name__)


class RedirectAffiliateTransformer:
    """Wrap a purchase URL into a redirect URL: <base>?redirect=<url>&tracking_id=<id>"""

    def __init__(self, redirect_base: str, tracking_id: Optional[str] = None):
        self.redirect_base = redirect_base
        self.tracking_id = tracking_id

    async def transform(self, url: str) -> Optional[str]:
        base = urlsplit(self.redirect_base)
        if base.scheme not in ("http", "https") or not base.netloc:
            raise AffiliateConversionError(
                "Affiliate redirect base is not an absolute http(s) URL",
                context={"redirect_base": self.redirect_base, "url": url}
            )

        params = [(k, v) for k, v in parse_qsl(base.query, keep_blank_values=True)
                  if k not in ("redirect", "tracking_id")]
        params.append(("redirect", url))
        if self.tracking_id:
            params.append(("tracking_id", self.tracking_id))

        return urlunsplit((base.scheme, base.netloc, base.path or "/", urlencode(params), ""))


class ConversionOutcome(str, enum.Enum):
    CONVERTED = "converted"
    SKIPPED = "skipped"
    FAILED = "failed"


class AffiliateConverter:
    """
    Convert original purchase links into affiliate links.

    Ensures:
    - Bounded keyset pages of candidates (by link id)
    - One transaction per candidate; a failure never blocks the batch
    - At most one affiliate row per deal across repeated runs
    """

    def __init__(
        self,
        db_session: AsyncSession,
        config: AffiliateConfig,
        transformer: Optional[AffiliateTransformer] = None,
    ):
        self.db = db_session
        self.config = config
        self.transformer = transformer or RedirectAffiliateTransformer(
            config.redirect_base, config.tracking_id
        )
        self.ledger = LinkLedger(db_session)

    async def run(self) -> AffiliateStats:
        tracker = RunTracker(self.db, JobType.AFFILIATE)
        await tracker.start()
        stats = AffiliateStats()
        after_id = 0

        logger.info(f"Affiliate conversion started (batch_size={self.config.batch_size})")

        try:
            while True:
                candidates = await self.ledger.list_affiliate_candidates(after_id, self.config.batch_size)
                await self.db.commit()
                if not candidates:
                    break

                for candidate in candidates:
                    after_id = candidate.link_id
                    stats.candidates += 1
                    outcome = await self.convert(candidate)
                    if outcome == ConversionOutcome.CONVERTED:
                        stats.converted += 1
                    elif outcome == ConversionOutcome.SKIPPED:
                        stats.skipped += 1
                    else:
                        stats.failed += 1

        except Exception as e:
            logger.exception("Unexpected error in affiliate conversion")
            await self.db.rollback()
            await tracker.complete(RunStatus.FAILED, stats.model_dump(), error_message=str(e))
            raise

        status = RunStatus.PARTIAL if stats.failed else RunStatus.SUCCESS
        await tracker.complete(status, stats.model_dump())
        logger.info(f"Affiliate conversion completed: {stats.model_dump()}")
        return stats

    async def convert(self, candidate: AffiliateCandidate) -> ConversionOutcome:
        """Convert and insert one candidate in its own transaction"""
        try:
            transformed = await self.transformer.transform(candidate.url)
        except PipelineException as e:
            logger.warning(
                f"Skipping deal {candidate.deal_id}: affiliate conversion failed for {candidate.url}",
                extra={"error_context": e.to_dict()}
            )
            return ConversionOutcome.SKIPPED
        except Exception as e:
            error = AffiliateConversionError(
                "Affiliate transformation raised",
                context={"deal_id": candidate.deal_id, "url": candidate.url},
                original_exception=e
            )
            logger.warning(
                f"Skipping deal {candidate.deal_id}: {e}",
                extra={"error_context": error.to_dict()}
            )
            return ConversionOutcome.SKIPPED

        affiliate_url = normalize_url(transformed) if transformed else None
        domain = extract_domain(affiliate_url)
        if not affiliate_url or not domain:
            logger.warning(f"Skipping deal {candidate.deal_id}: no usable affiliate url for {candidate.url}")
            return ConversionOutcome.SKIPPED

        try:
            if self.config.advisory_lock:
                await self.ledger.lock_deal(candidate.deal_id)

            if await self.ledger.has_affiliate(candidate.deal_id):
                await self.db.rollback()
                logger.info(f"Deal {candidate.deal_id} already has an affiliate link; skipping")
                return ConversionOutcome.SKIPPED

            inserted = await self.ledger.insert_affiliate(candidate.deal_id, affiliate_url, domain)
            await self.db.commit()

        except Exception as e:
            await self.db.rollback()
            error = PersistFailure(
                "Failed to insert affiliate link",
                context={"deal_id": candidate.deal_id, "url": affiliate_url},
                original_exception=e
            )
            logger.error(
                f"Affiliate insert failed for deal {candidate.deal_id}: {e}",
                extra={"error_context": error.to_dict()}
            )
            return ConversionOutcome.FAILED

        if not inserted:
            return ConversionOutcome.SKIPPED
        logger.debug(f"Converted deal {candidate.deal_id}: {affiliate_url}")
        return ConversionOutcome.CONVERTED
