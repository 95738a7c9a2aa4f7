"""
Job Model - Employer job postings as seen by the match engine

A job declares which accessibilities it offers and which disability
subtypes it accepts (no accepted subtypes means open to all). The
employer's city/state is used for location scoring.

Work regime is free text (e.g. "Remoto", "Hybrid", "Presencial") and is
normalized at read time.
"""

from sqlalchemy import Boolean, Column, String, Integer, DateTime, ForeignKey, Table
from sqlalchemy.sql import func
from app.database import Base


job_accessibilities = Table(
    "job_accessibilities",
    Base.metadata,
    Column("job_id", Integer, ForeignKey("jobs.id"), primary_key=True),
    Column("accessibility_id", Integer, ForeignKey("accessibilities.id"), primary_key=True),
)

job_accepted_subtypes = Table(
    "job_accepted_subtypes",
    Base.metadata,
    Column("job_id", Integer, ForeignKey("jobs.id"), primary_key=True),
    Column("subtype_id", Integer, ForeignKey("disability_subtypes.id"), primary_key=True),
)


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    name = Column(String(500), nullable=False)
    city = Column(String(200), nullable=True)
    state = Column(String(100), nullable=True)


class Job(Base):
    """
    Job posting entity.

    Attributes:
        id: Integer primary key
        company_id: Employer
        title: Job title
        education: Required education level (nullable = no requirement)
        work_regime: Free-text regime (remote/hybrid/onsite)
        is_active: Only active jobs take part in batch recomputation
    """

    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    title = Column(String(500), nullable=False)
    education = Column(String(100), nullable=True)
    work_regime = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
