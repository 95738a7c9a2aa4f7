"""
Match Score Store - Persisted MatchResult rows keyed by (candidate, job)

Contract:
    - upsert(result): full replacement of any existing row for the pair
    - get(candidate_id, job_id): latest row or None
    - list_for_candidate(candidate_id, limit, descending=True)
    - list_for_job(job_id, limit, descending=True)

Lists are ordered by total score, ties broken by the other id ascending.

Concurrency:
    Upserts to different pairs are independent. Upserts to the same pair
    may race; last write wins, since rows are a pure function of upstream
    data.
"""

from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models import MatchScore
from app.services.aggregator import Band, DimensionScores, MatchResult


@runtime_checkable
class MatchScoreStore(Protocol):
    """Protocol for match score persistence."""

    async def upsert(self, result: MatchResult) -> None:
        ...

    async def get(self, candidate_id: int, job_id: int) -> Optional[MatchResult]:
        ...

    async def list_for_candidate(
        self, candidate_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        ...

    async def list_for_job(
        self, job_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        ...


def result_to_row(result: MatchResult) -> dict:
    """Column values for a MatchScore row."""
    return {
        "candidate_id": result.candidate_id,
        "job_id": result.job_id,
        "total_score": result.total_score,
        "subtype_score": result.dimensions.subtype,
        "accessibility_score": result.dimensions.accessibility,
        "education_score": result.dimensions.education,
        "regime_score": result.dimensions.regime,
        "location_score": result.dimensions.location,
        "band": result.band.value,
        "compatible": result.compatible,
        "signals": list(result.signals),
        "breakdown": result.breakdown,
        "computed_at": result.computed_at,
    }


def row_to_result(row: MatchScore) -> MatchResult:
    return MatchResult(
        candidate_id=row.candidate_id,
        job_id=row.job_id,
        total_score=row.total_score,
        band=Band(row.band),
        compatible=bool(row.compatible),
        dimensions=DimensionScores(
            subtype=row.subtype_score,
            accessibility=row.accessibility_score,
            education=row.education_score,
            regime=row.regime_score,
            location=row.location_score,
        ),
        signals=tuple(row.signals or ()),
        breakdown=dict(row.breakdown or {}),
        computed_at=row.computed_at,
    )


def _upsert_statement(dialect_name: str, values: dict):
    """
    Build an INSERT ... ON CONFLICT DO UPDATE for dialects that support it.

    Returns:
        Statement, or None when the dialect has no native upsert
    """
    if dialect_name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect_name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        return None

    stmt = insert(MatchScore).values(**values)
    update_cols = {
        key: stmt.excluded[key]
        for key in values
        if key not in ("candidate_id", "job_id")
    }
    return stmt.on_conflict_do_update(
        index_elements=["candidate_id", "job_id"],
        set_=update_cols,
    )


class SqlAlchemyMatchScoreStore:
    """
    MatchScore persistence on the platform database.

    Opens one session per call so concurrent batch workers can upsert
    different pairs in parallel.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def upsert(self, result: MatchResult) -> None:
        values = result_to_row(result)
        async with self.session_factory() as session:
            stmt = _upsert_statement(session.get_bind().dialect.name, values)
            try:
                if stmt is not None:
                    await session.execute(stmt)
                else:
                    await session.merge(MatchScore(**values))
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get(self, candidate_id: int, job_id: int) -> Optional[MatchResult]:
        async with self.session_factory() as session:
            row = await session.get(MatchScore, (candidate_id, job_id))
            return row_to_result(row) if row else None

    async def list_for_candidate(
        self, candidate_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        order = MatchScore.total_score.desc() if descending else MatchScore.total_score.asc()
        query = (
            select(MatchScore)
            .where(MatchScore.candidate_id == candidate_id)
            .order_by(order, MatchScore.job_id.asc())
        )
        return await self._list(query, limit)

    async def list_for_job(
        self, job_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        order = MatchScore.total_score.desc() if descending else MatchScore.total_score.asc()
        query = (
            select(MatchScore)
            .where(MatchScore.job_id == job_id)
            .order_by(order, MatchScore.candidate_id.asc())
        )
        return await self._list(query, limit)

    async def _list(self, query, limit: Optional[int]) -> List[MatchResult]:
        if limit is not None:
            query = query.limit(limit)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return [row_to_result(row) for row in result.scalars().all()]


class InMemoryMatchScoreStore:
    """Dict-backed store keyed by (candidate_id, job_id)."""

    def __init__(self):
        self.rows: Dict[Tuple[int, int], MatchResult] = {}

    async def upsert(self, result: MatchResult) -> None:
        self.rows[(result.candidate_id, result.job_id)] = result

    async def get(self, candidate_id: int, job_id: int) -> Optional[MatchResult]:
        return self.rows.get((candidate_id, job_id))

    async def list_for_candidate(
        self, candidate_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        results = [r for (c, _), r in self.rows.items() if c == candidate_id]
        return _ranked(results, lambda r: r.job_id, limit, descending)

    async def list_for_job(
        self, job_id: int, limit: Optional[int] = None, descending: bool = True
    ) -> List[MatchResult]:
        results = [r for (_, j), r in self.rows.items() if j == job_id]
        return _ranked(results, lambda r: r.candidate_id, limit, descending)


def _ranked(results, tie_key, limit: Optional[int], descending: bool) -> List[MatchResult]:
    sign = -1 if descending else 1
    ordered = sorted(results, key=lambda r: (sign * r.total_score, tie_key(r)))
    return ordered[:limit] if limit is not None else ordered
