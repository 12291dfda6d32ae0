"""Companies (trade-show stands), their prizes and collaborator codes."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import ID_TYPE, Base, utcnow

if TYPE_CHECKING:
    from .participant import RoletaParticipant


class Company(Base):
    """A stand that runs its own prize wheel."""

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    """Display name shown above the wheel."""

    logo_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    """Optional logo rendered in the wheel hub."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    prizes: Mapped[list["Prize"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
        order_by=lambda: [Prize.position, Prize.id],
    )
    """Prizes in wheel slice order."""

    collaborators: Mapped[list["Collaborator"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )
    participants: Mapped[list["RoletaParticipant"]] = relationship(
        back_populates="company",
        cascade="all, delete-orphan",
    )

    def __init__(
        self,
        *,
        name: str,
        logo_url: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.name = name
        self.logo_url = logo_url
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Company(id={self.id}, name='{self.name}')>"


class Prize(Base):
    """One slice of a company's wheel."""

    __tablename__ = "prizes"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    """Slice order on the wheel; ties are broken by ``id``."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    company: Mapped["Company"] = relationship(back_populates="prizes")

    def __init__(
        self,
        *,
        name: str,
        company: Optional[Company] = None,
        company_id: Optional[int] = None,
        position: int = 0,
    ) -> None:
        self.name = name
        self.position = position
        if company is not None:
            self.company = company
        if company_id is not None:
            self.company_id = company_id

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Prize(id={self.id}, company_id={self.company_id}, name='{self.name}')>"

    @classmethod
    def list_for_company(cls, session: Session, company_id: int) -> list["Prize"]:
        """Return the company's prizes in wheel slice order."""

        stmt = (
            select(cls)
            .where(cls.company_id == company_id)
            .order_by(cls.position.asc(), cls.id.asc())
        )
        return list(session.scalars(stmt).all())

    @classmethod
    def next_position(cls, session: Session, company_id: int) -> int:
        """Position that appends a new slice after the company's last one."""

        last = session.scalar(
            select(func.max(cls.position)).where(cls.company_id == company_id)
        )
        return 0 if last is None else last + 1

    def has_winners(self, session: Session) -> bool:
        """Whether any participant's spin already landed on this prize."""

        from .participant import RoletaParticipant

        return (
            session.scalar(
                select(RoletaParticipant.id)
                .where(RoletaParticipant.prize_id == self.id)
                .limit(1)
            )
            is not None
        )

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("Prize name must not be empty")
        return normalized


class Collaborator(Base):
    """Stand staff member whose code unlocks the wheel for an attendee."""

    __tablename__ = "collaborators"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False)
    """Access code, always stored upper-case."""

    company: Mapped["Company"] = relationship(back_populates="collaborators")

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="uq_collaborators_company_code"),
    )

    def __init__(
        self,
        *,
        code: str,
        company: Optional[Company] = None,
        company_id: Optional[int] = None,
        name: Optional[str] = None,
    ) -> None:
        self.code = code
        self.name = name
        if company is not None:
            self.company = company
        if company_id is not None:
            self.company_id = company_id

    @validates("code")
    def _normalize_code(self, _key: str, value: str) -> str:
        normalized = value.strip().upper()
        if not normalized:
            raise ValueError("Collaborator code must not be empty")
        return normalized

    @classmethod
    def get_by_code(
        cls, session: Session, company_id: int, code: str
    ) -> Optional["Collaborator"]:
        """Return the collaborator of ``company_id`` matching ``code``, if any."""

        return session.scalar(
            select(cls).where(
                cls.company_id == company_id,
                cls.code == code.strip().upper(),
            )
        )


__all__ = ["Collaborator", "Company", "Prize"]
