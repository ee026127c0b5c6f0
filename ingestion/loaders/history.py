"""
Insert-only history appenders: metric snapshots and the raw crawl archive.

Neither class has an update or delete path; every successful pass over an
item adds one row to each table.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.metric_snapshot import MetricSnapshot
from models.raw_data import RawRecord


class MetricsRecorder:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def insert_snapshot(
        self,
        deal_id: int,
        source: str,
        views: Optional[int] = None,
        votes: Optional[int] = None,
        comments: Optional[int] = None,
        captured_at: Optional[datetime] = None,
    ) -> None:
        values = {
            "deal_id": deal_id,
            "source": source,
            "views": views,
            "votes": votes,
            "comments": comments,
        }
        if captured_at is not None:
            values["captured_at"] = captured_at
        await self.db.execute(insert(MetricSnapshot).values(**values))

    async def history(self, deal_id: int) -> List[MetricSnapshot]:
        result = await self.db.execute(
            select(MetricSnapshot)
            .where(MetricSnapshot.deal_id == deal_id)
            .order_by(MetricSnapshot.captured_at.desc(), MetricSnapshot.id.desc())
        )
        return list(result.scalars().all())


class RawArchive:
    """Append-only archive of everything extracted for one crawl of one post"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def append(
        self,
        source: str,
        source_post_id: str,
        payload: Dict[str, Any],
        crawled_at: Optional[datetime] = None,
    ) -> None:
        values = {
            "source": source,
            "source_post_id": source_post_id,
            "payload": payload,
        }
        if crawled_at is not None:
            values["crawled_at"] = crawled_at
        await self.db.execute(insert(RawRecord).values(**values))

    async def history(
        self,
        source: str,
        source_post_id: str,
        limit: Optional[int] = None,
    ) -> List[RawRecord]:
        """Archived records of one post, newest first"""
        stmt = (
            select(RawRecord)
            .where(
                RawRecord.source == source,
                RawRecord.source_post_id == source_post_id,
            )
            .order_by(RawRecord.crawled_at.desc(), RawRecord.id.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
