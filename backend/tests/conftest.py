"""
Shared fixtures for match engine tests.

Reference taxonomy used throughout:

    Subtype 1 (low vision)      → barrier 10 (small print)     → 100 (screen reader)
                                → barrier 13 (screen glare)    → 105 (adjustable lighting)
    Subtype 2 (wheelchair user) → barrier 11 (stairs)          → 101 (ramp), 102 (elevator)
    Subtype 3 (deaf)            → barrier 12 (audio-only info) → 103 (interpreter), 104 (captions)
    Subtype 4 (other)           → no barriers
"""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.services.engine import MatchEngine
from app.services.profiles import CandidateProfile, DirectNeed, JobProfile, WorkRegime
from app.services.sources import InMemoryDataSource
from app.services.store import InMemoryMatchScoreStore
from app.services.taxonomy import Priority, TaxonomyGraph


@pytest.fixture
def taxonomy() -> TaxonomyGraph:
    return TaxonomyGraph.from_rows(
        subtype_ids=[1, 2, 3, 4],
        barrier_ids=[10, 11, 12, 13],
        accessibility_ids=[100, 101, 102, 103, 104, 105],
        subtype_barrier_pairs=[(1, 10), (1, 13), (2, 11), (3, 12)],
        barrier_accessibility_pairs=[
            (10, 100),
            (11, 101),
            (11, 102),
            (12, 103),
            (12, 104),
            (13, 105),
        ],
    )


@pytest.fixture
def wheelchair_candidate() -> CandidateProfile:
    """Wheelchair user in São Paulo with a higher education degree."""
    return CandidateProfile(
        id=1,
        subtype_ids=frozenset({2}),
        direct_needs=(DirectNeed(100, Priority.DESIRABLE),),
        education="Superior Completo",
        city="São Paulo",
        state="SP",
    )


@pytest.fixture
def accessible_job() -> JobProfile:
    """Remote job accepting wheelchair users, offering ramp, elevator and screen reader."""
    return JobProfile(
        id=10,
        accepted_subtype_ids=frozenset({2}),
        offered_accessibility_ids=frozenset({100, 101, 102}),
        education="medio",
        regime=WorkRegime.REMOTE,
        city="São Paulo",
        state="SP",
    )


@pytest.fixture
def make_engine(taxonomy):
    """Build a MatchEngine over in-memory data."""

    def _make(candidates=(), jobs=(), mitigations=None, source=None, **kwargs):
        source = source or InMemoryDataSource(
            taxonomy=taxonomy,
            candidates=candidates,
            jobs=jobs,
            mitigations=mitigations,
        )
        store = kwargs.pop("store", None) or InMemoryMatchScoreStore()
        return MatchEngine(source=source, store=store, **kwargs)

    return _make


@pytest.fixture
async def session_factory():
    """Async session factory over a fresh in-memory SQLite database."""
    import app.models  # noqa: F401

    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
