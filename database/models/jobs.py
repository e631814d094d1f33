"""
Company and Job Posting Models

Maintained by the recruiter-facing CRUD surface. The orchestrator reads
identity fields and ``is_active`` only.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils.datetime import now
from database.engine import Base, IdType

if TYPE_CHECKING:
    from database.models.accounts import Account
    from database.models.applications import Application


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    recruiters: Mapped[list["Account"]] = relationship("Account", back_populates="company")
    job_postings: Mapped[list["JobPosting"]] = relationship(
        "JobPosting", back_populates="company"
    )


class JobPosting(Base):
    __tablename__ = "job_postings"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        IdType, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    requirements: Mapped[str] = mapped_column(Text, nullable=False, default="")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    company: Mapped["Company"] = relationship("Company", back_populates="job_postings")
    applications: Mapped[list["Application"]] = relationship(
        "Application", back_populates="job_posting"
    )
