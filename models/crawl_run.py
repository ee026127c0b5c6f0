from sqlalchemy import Column, String, Enum, DateTime, Float, Text, Index
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONPayload, JobType, RunStatus


class CrawlRun(Base):
    """
    Tracks metadata for each batch invocation (crawl, affiliate, refresh).

    Purpose:
    - Audit trail of all runs
    - Run summary counters for monitoring soft failures
    - Error tracking for runs that terminated early
    """
    __tablename__ = "crawl_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True, nullable=False)

    job = Column(Enum(JobType, name="job_type", native_enum=False, length=32), nullable=False, index=True)
    source = Column(String(50), nullable=True, index=True)

    status = Column(
        Enum(RunStatus, name="run_status", native_enum=False, length=16),
        default=RunStatus.RUNNING,
        nullable=False,
    )

    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Counters of the run summary (CrawlStats / AffiliateStats / RefreshStats)
    stats = Column(JSONPayload, nullable=True)

    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_crawl_run_job_started", "job", "started_at"),
    )
