"""
MatchScore Model - Persisted compatibility score per (candidate, job)

One row per pair. Rows are fully replaced on every recomputation and are
never partially updated.
"""

from datetime import timezone

from sqlalchemy import Boolean, Column, String, Integer, DateTime, JSON, ForeignKey
from sqlalchemy.types import TypeDecorator
from app.database import Base


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp on every backend.

    Binds as UTC (naive input is taken to be UTC already) and always reads
    back aware, including on SQLite where the offset is not stored.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class MatchScore(Base):
    """
    Cached match result.

    Attributes:
        candidate_id/job_id: Composite primary key
        total_score: Weighted total (0-100)
        *_score: Per-dimension sub-scores (0-100)
        band: perfect | excellent | good | fair | low
        compatible: Total above threshold and subtype accepted
        signals: JSON list of signal tags
        breakdown: Opaque JSON payload with scoring details
        computed_at: When the row was last written (aware UTC)
    """

    __tablename__ = "match_scores"

    candidate_id = Column(Integer, ForeignKey("candidates.id"), primary_key=True)
    job_id = Column(Integer, ForeignKey("jobs.id"), primary_key=True)
    total_score = Column(Integer, nullable=False, index=True)
    subtype_score = Column(Integer, nullable=False)
    accessibility_score = Column(Integer, nullable=False)
    education_score = Column(Integer, nullable=False)
    regime_score = Column(Integer, nullable=False)
    location_score = Column(Integer, nullable=False)
    band = Column(String(20), nullable=False)
    compatible = Column(Boolean, nullable=False, default=False)
    signals = Column(JSON, nullable=False, default=list)
    breakdown = Column(JSON, nullable=False, default=dict)
    computed_at = Column(UTCDateTime, nullable=False)
