from sqlalchemy import BigInteger, Integer, JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()


# ============================================================================
# PORTABLE TYPES
# ============================================================================

# BIGSERIAL on PostgreSQL, INTEGER PRIMARY KEY (rowid alias) on SQLite
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class ShippingType(str, enum.Enum):
    """Normalized shipping classification"""
    FREE = "FREE"
    PAID = "PAID"
    UNKNOWN = "UNKNOWN"


class RunStatus(str, enum.Enum):
    """Batch run status"""
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class JobType(str, enum.Enum):
    """Independent batch stages"""
    CRAWL = "crawl"
    AFFILIATE = "affiliate"
    REFRESH_METRICS = "refresh_metrics"
    REFRESH_SUBCATEGORY = "refresh_subcategory"
