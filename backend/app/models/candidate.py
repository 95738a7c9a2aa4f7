"""
Candidate Models - PcD candidate profile tables

The engine only reads these tables. Subtypes, per-subtype barrier
selection, direct accessibility needs (with priority) and assistive
resources are stored in join tables.

Priority: essential | important | desirable (missing reads as important)
"""

from sqlalchemy import Boolean, Column, String, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True)
    name = Column(String(300), nullable=False)
    education = Column(String(100), nullable=True)
    city = Column(String(200), nullable=True)
    state = Column(String(100), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CandidateSubtype(Base):
    __tablename__ = "candidate_subtypes"

    candidate_id = Column(Integer, ForeignKey("candidates.id"), primary_key=True)
    subtype_id = Column(Integer, ForeignKey("disability_subtypes.id"), primary_key=True)


class CandidateSubtypeBarrier(Base):
    """Barriers a candidate reports for one of their subtypes."""

    __tablename__ = "candidate_subtype_barriers"

    candidate_id = Column(Integer, ForeignKey("candidates.id"), primary_key=True)
    subtype_id = Column(Integer, ForeignKey("disability_subtypes.id"), primary_key=True)
    barrier_id = Column(Integer, ForeignKey("barriers.id"), primary_key=True)


class CandidateAccessibility(Base):
    __tablename__ = "candidate_accessibilities"

    candidate_id = Column(Integer, ForeignKey("candidates.id"), primary_key=True)
    accessibility_id = Column(Integer, ForeignKey("accessibilities.id"), primary_key=True)
    priority = Column(String(20), nullable=True)


class CandidateAssistiveResource(Base):
    __tablename__ = "candidate_assistive_resources"

    candidate_id = Column(Integer, ForeignKey("candidates.id"), primary_key=True)
    resource_id = Column(Integer, ForeignKey("assistive_resources.id"), primary_key=True)
    usage_frequency = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
