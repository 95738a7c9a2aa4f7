"""
Taxonomy Models - Disability reference data

Reference graph consumed (read-only) by the match engine:

    DisabilityType → DisabilitySubtype → Barrier → Accessibility

plus AssistiveResource → ResourceMitigation → Barrier, describing how well a
device or aid neutralizes a barrier.

Mitigation efficiency: high | medium | low
"""

from sqlalchemy import Column, String, Integer, ForeignKey, Table
from app.database import Base


subtype_barriers = Table(
    "subtype_barriers",
    Base.metadata,
    Column("subtype_id", Integer, ForeignKey("disability_subtypes.id"), primary_key=True),
    Column("barrier_id", Integer, ForeignKey("barriers.id"), primary_key=True),
)

barrier_accessibilities = Table(
    "barrier_accessibilities",
    Base.metadata,
    Column("barrier_id", Integer, ForeignKey("barriers.id"), primary_key=True),
    Column("accessibility_id", Integer, ForeignKey("accessibilities.id"), primary_key=True),
)


class DisabilityType(Base):
    __tablename__ = "disability_types"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)


class DisabilitySubtype(Base):
    __tablename__ = "disability_subtypes"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)
    type_id = Column(Integer, ForeignKey("disability_types.id"), nullable=False)


class Barrier(Base):
    __tablename__ = "barriers"

    id = Column(Integer, primary_key=True)
    description = Column(String(500), nullable=False)


class Accessibility(Base):
    __tablename__ = "accessibilities"

    id = Column(Integer, primary_key=True)
    description = Column(String(500), nullable=False)


class AssistiveResource(Base):
    __tablename__ = "assistive_resources"

    id = Column(Integer, primary_key=True)
    name = Column(String(200), nullable=False)


class ResourceMitigation(Base):
    """
    How strongly an assistive resource offsets a barrier.

    Attributes:
        resource_id: Assistive resource providing the mitigation
        barrier_id: Barrier being mitigated
        efficiency: high | medium | low (missing reads as low)
    """

    __tablename__ = "resource_mitigations"

    resource_id = Column(Integer, ForeignKey("assistive_resources.id"), primary_key=True)
    barrier_id = Column(Integer, ForeignKey("barriers.id"), primary_key=True)
    efficiency = Column(String(10), nullable=True)
