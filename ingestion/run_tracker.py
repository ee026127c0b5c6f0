"""
Batch run audit (crawl_runs): one row per crawl / affiliate / refresh invocation
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import insert, update
from sqlalchemy.ext.asyncio import AsyncSession

from models.base import JobType, RunStatus
from models.crawl_run import CrawlRun
import logging
import uuid

logger = logging.getLogger(__name__)


class RunTracker:
    """
    Start/complete a CrawlRun row.

    The row is written with Core statements and its id kept locally, so
    per-item rollbacks in the same session never touch it.
    """

    def __init__(self, db_session: AsyncSession, job: JobType, source: Optional[str] = None):
        self.db = db_session
        self.job = job
        self.source = source
        self.run_id: Optional[str] = None
        self.started_at: Optional[datetime] = None
        self._row_id: Optional[int] = None

    async def start(self) -> str:
        """Create the run record (status RUNNING) and return its run_id"""
        self.run_id = str(uuid.uuid4())
        self.started_at = datetime.utcnow()
        result = await self.db.execute(
            insert(CrawlRun).values(
                run_id=self.run_id,
                job=self.job,
                source=self.source,
                status=RunStatus.RUNNING,
                started_at=self.started_at,
            ).returning(CrawlRun.id)
        )
        self._row_id = result.scalar_one()
        await self.db.commit()
        logger.info(f"Started {self.job.value} run {self.run_id}" + (f" for {self.source}" if self.source else ""))
        return self.run_id

    async def complete(
        self,
        status: RunStatus,
        stats: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Complete run with statistics"""
        if self._row_id is None:
            return
        completed_at = datetime.utcnow()
        await self.db.execute(
            update(CrawlRun)
            .where(CrawlRun.id == self._row_id)
            .values(
                status=status,
                completed_at=completed_at,
                duration_seconds=(completed_at - self.started_at).total_seconds(),
                stats=stats,
                error_message=error_message,
            )
        )
        await self.db.commit()
