"""
Match Data Sources - Read-only access to candidates, jobs and taxonomy

The engine never owns candidate, job or taxonomy records. It pulls fresh
read views through a MatchDataSource:

    - fetch_candidate_profile(id) -> CandidateProfile | None
    - fetch_job_profile(id) -> JobProfile | None
    - fetch_taxonomy_graph() -> TaxonomyGraph
    - fetch_assistive_resource_mitigations(candidate_id) -> [Mitigation]
    - list_active_job_ids() / list_active_candidate_ids()

Implementations:
    - SqlAlchemyDataSource: async SQLAlchemy, one session per call so
      concurrent batch workers never share a session
    - InMemoryDataSource: dict-backed, for tests and scripts
"""

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models import (
    Accessibility,
    AssistiveResource,
    Barrier,
    Candidate,
    CandidateAccessibility,
    CandidateAssistiveResource,
    CandidateSubtype,
    CandidateSubtypeBarrier,
    Company,
    DisabilitySubtype,
    Job,
    ResourceMitigation,
    barrier_accessibilities,
    job_accepted_subtypes,
    job_accessibilities,
    subtype_barriers,
)
from app.services.profiles import CandidateProfile, DirectNeed, JobProfile, WorkRegime
from app.services.taxonomy import Efficiency, Mitigation, Priority, TaxonomyGraph


@runtime_checkable
class MatchDataSource(Protocol):
    """Protocol for the external collaborators the engine reads from."""

    async def fetch_candidate_profile(self, candidate_id: int) -> Optional[CandidateProfile]:
        ...

    async def fetch_job_profile(self, job_id: int) -> Optional[JobProfile]:
        ...

    async def fetch_taxonomy_graph(self) -> TaxonomyGraph:
        ...

    async def fetch_assistive_resource_mitigations(self, candidate_id: int) -> List[Mitigation]:
        ...

    async def list_active_job_ids(self) -> List[int]:
        ...

    async def list_active_candidate_ids(self) -> List[int]:
        ...


class SqlAlchemyDataSource:
    """
    Data source backed by the platform database.

    Attributes:
        session_factory: async_sessionmaker producing AsyncSession objects
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def fetch_candidate_profile(self, candidate_id: int) -> Optional[CandidateProfile]:
        async with self.session_factory() as session:
            candidate = await session.get(Candidate, candidate_id)
            if candidate is None:
                return None

            subtype_rows = await session.execute(
                select(CandidateSubtype.subtype_id).where(
                    CandidateSubtype.candidate_id == candidate_id
                )
            )
            subtype_ids = frozenset(row[0] for row in subtype_rows.all())

            barrier_rows = await session.execute(
                select(CandidateSubtypeBarrier.subtype_id, CandidateSubtypeBarrier.barrier_id).where(
                    CandidateSubtypeBarrier.candidate_id == candidate_id
                )
            )
            selected: Dict[int, set] = {}
            for subtype_id, barrier_id in barrier_rows.all():
                selected.setdefault(subtype_id, set()).add(barrier_id)

            need_rows = await session.execute(
                select(CandidateAccessibility.accessibility_id, CandidateAccessibility.priority).where(
                    CandidateAccessibility.candidate_id == candidate_id
                )
            )
            direct_needs = tuple(
                DirectNeed(accessibility_id=accessibility_id, priority=Priority.parse(priority))
                for accessibility_id, priority in sorted(need_rows.all(), key=lambda r: r[0])
            )

            return CandidateProfile(
                id=candidate.id,
                subtype_ids=subtype_ids,
                subtype_barriers={k: frozenset(v) for k, v in selected.items()},
                direct_needs=direct_needs,
                education=candidate.education,
                city=candidate.city,
                state=candidate.state,
            )

    async def fetch_job_profile(self, job_id: int) -> Optional[JobProfile]:
        async with self.session_factory() as session:
            job = await session.get(Job, job_id)
            if job is None:
                return None

            company = await session.get(Company, job.company_id)

            offered_rows = await session.execute(
                select(job_accessibilities.c.accessibility_id).where(
                    job_accessibilities.c.job_id == job_id
                )
            )
            accepted_rows = await session.execute(
                select(job_accepted_subtypes.c.subtype_id).where(
                    job_accepted_subtypes.c.job_id == job_id
                )
            )

            return JobProfile(
                id=job.id,
                accepted_subtype_ids=frozenset(row[0] for row in accepted_rows.all()),
                offered_accessibility_ids=frozenset(row[0] for row in offered_rows.all()),
                education=job.education,
                regime=WorkRegime.parse(job.work_regime),
                city=company.city if company else None,
                state=company.state if company else None,
            )

    async def fetch_taxonomy_graph(self) -> TaxonomyGraph:
        async with self.session_factory() as session:
            subtype_ids = (await session.execute(select(DisabilitySubtype.id))).scalars().all()
            barrier_ids = (await session.execute(select(Barrier.id))).scalars().all()
            accessibility_ids = (await session.execute(select(Accessibility.id))).scalars().all()
            sb_rows = await session.execute(
                select(subtype_barriers.c.subtype_id, subtype_barriers.c.barrier_id)
            )
            ba_rows = await session.execute(
                select(barrier_accessibilities.c.barrier_id, barrier_accessibilities.c.accessibility_id)
            )

            return TaxonomyGraph.from_rows(
                subtype_ids=subtype_ids,
                barrier_ids=barrier_ids,
                accessibility_ids=accessibility_ids,
                subtype_barrier_pairs=[tuple(r) for r in sb_rows.all()],
                barrier_accessibility_pairs=[tuple(r) for r in ba_rows.all()],
            )

    async def fetch_assistive_resource_mitigations(self, candidate_id: int) -> List[Mitigation]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(
                    ResourceMitigation.resource_id,
                    ResourceMitigation.barrier_id,
                    ResourceMitigation.efficiency,
                    AssistiveResource.name,
                )
                .join(
                    CandidateAssistiveResource,
                    CandidateAssistiveResource.resource_id == ResourceMitigation.resource_id,
                )
                .join(AssistiveResource, AssistiveResource.id == ResourceMitigation.resource_id)
                .where(CandidateAssistiveResource.candidate_id == candidate_id)
                .order_by(ResourceMitigation.resource_id, ResourceMitigation.barrier_id)
            )
            return [
                Mitigation(
                    resource_id=resource_id,
                    barrier_id=barrier_id,
                    efficiency=Efficiency.parse(efficiency),
                    resource_name=name or "",
                )
                for resource_id, barrier_id, efficiency, name in result.all()
            ]

    async def list_active_job_ids(self) -> List[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Job.id).where(Job.is_active.is_(True)).order_by(Job.id)
            )
            return list(result.scalars().all())

    async def list_active_candidate_ids(self) -> List[int]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Candidate.id).where(Candidate.is_active.is_(True)).order_by(Candidate.id)
            )
            return list(result.scalars().all())


class InMemoryDataSource:
    """
    Dict-backed data source.

    Candidates/jobs listed in inactive_*_ids are fetchable but excluded
    from the active lists.
    """

    def __init__(
        self,
        taxonomy: Optional[TaxonomyGraph] = None,
        candidates: Iterable[CandidateProfile] = (),
        jobs: Iterable[JobProfile] = (),
        mitigations: Optional[Dict[int, List[Mitigation]]] = None,
        inactive_candidate_ids: Iterable[int] = (),
        inactive_job_ids: Iterable[int] = (),
    ):
        self.taxonomy = taxonomy or TaxonomyGraph()
        self.candidates: Dict[int, CandidateProfile] = {c.id: c for c in candidates}
        self.jobs: Dict[int, JobProfile] = {j.id: j for j in jobs}
        self.mitigations: Dict[int, List[Mitigation]] = dict(mitigations or {})
        self.inactive_candidate_ids = set(inactive_candidate_ids)
        self.inactive_job_ids = set(inactive_job_ids)

    async def fetch_candidate_profile(self, candidate_id: int) -> Optional[CandidateProfile]:
        return self.candidates.get(candidate_id)

    async def fetch_job_profile(self, job_id: int) -> Optional[JobProfile]:
        return self.jobs.get(job_id)

    async def fetch_taxonomy_graph(self) -> TaxonomyGraph:
        return self.taxonomy

    async def fetch_assistive_resource_mitigations(self, candidate_id: int) -> List[Mitigation]:
        return list(self.mitigations.get(candidate_id, []))

    async def list_active_job_ids(self) -> List[int]:
        return sorted(j for j in self.jobs if j not in self.inactive_job_ids)

    async def list_active_candidate_ids(self) -> List[int]:
        return sorted(c for c in self.candidates if c not in self.inactive_candidate_ids)
