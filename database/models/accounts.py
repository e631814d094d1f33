"""
Account Models

Accounts are provisioned by the external identity provider. The core only
reads the role, the contact email and, for recruiters, the company the
account acts for.
"""

from datetime import datetime
from enum import Enum as PyEnum
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.utils.datetime import now
from database.engine import Base, IdType

if TYPE_CHECKING:
    from database.models.candidates import CandidateProfile
    from database.models.jobs import Company


class AccountRole(str, PyEnum):
    """Role chosen during onboarding."""

    CANDIDATE = "CANDIDATE"
    RECRUITER = "RECRUITER"


class Account(Base):
    """An identity known to the platform."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(IdType, primary_key=True, autoincrement=True)
    external_ref: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True
    )  # Identity provider user id
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[AccountRole | None] = mapped_column(
        SQLEnum(AccountRole, native_enum=False, length=20), index=True
    )
    # Recruiters only
    company_id: Mapped[int | None] = mapped_column(
        IdType, ForeignKey("companies.id", ondelete="SET NULL"), index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now
    )

    company: Mapped["Company | None"] = relationship("Company", back_populates="recruiters")
    candidate_profile: Mapped["CandidateProfile | None"] = relationship(
        "CandidateProfile", back_populates="account", uselist=False
    )
