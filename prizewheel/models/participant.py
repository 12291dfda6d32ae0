"""Wheel participants registered at a company stand."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, select
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import ID_TYPE, Base, utcnow
from .utils import dt_iso, normalize_email, normalize_optional_text

if TYPE_CHECKING:
    from .company import Company, Prize


class RoletaParticipant(Base):
    """An attendee who registered to spin a company's wheel.

    The row is created without a prize. Settling a spin sets ``prize_id``,
    ``prize_name`` and ``spun_at`` together; once ``spun_at`` is set it is
    never written again.
    """

    __tablename__ = "roleta_participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    company_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    """Stand at which the participant registered."""

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Lower-cased e-mail, the identity used for duplicate detection."""

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    prize_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("prizes.id", ondelete="SET NULL"), nullable=True
    )
    """Prize won, if the participant has spun."""

    prize_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Snapshot of the prize name at spin time."""

    spun_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Timestamp of the settled spin; ``None`` until the participant spins."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    company: Mapped["Company"] = relationship(back_populates="participants")
    prize: Mapped[Optional["Prize"]] = relationship()

    __table_args__ = (
        Index("ix_roleta_participants_company_email", "company_id", "email"),
    )

    def __init__(
        self,
        *,
        name: str,
        company: Optional["Company"] = None,
        company_id: Optional[int] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.name = name
        self.email = email
        self.phone = phone
        if company is not None:
            self.company = company
        if company_id is not None:
            self.company_id = company_id
        if created_at is not None:
            self.created_at = created_at

    @validates("email")
    def _normalize_email(self, _key: str, value: Optional[str]) -> Optional[str]:
        return normalize_email(value)

    @validates("phone")
    def _normalize_phone(self, _key: str, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)

    @validates("name")
    def _normalize_name(self, _key: str, value: str) -> str:
        normalized = (value or "").strip()
        if not normalized:
            raise ValueError("Participant name must not be empty")
        return normalized

    @property
    def has_spun(self) -> bool:
        return self.spun_at is not None

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return (
            f"<RoletaParticipant(id={self.id}, company_id={self.company_id}, "
            f"prize_name='{self.prize_name}', spun_at='{self.spun_at}')>"
        )

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "prize_id": self.prize_id,
            "prize_name": self.prize_name,
            "spun_at": dt_iso(self.spun_at),
            "created_at": dt_iso(self.created_at),
        }

    @classmethod
    def get_by_email(
        cls, session: Session, company_id: int, email: str
    ) -> Optional["RoletaParticipant"]:
        """Return the participant registered with ``email`` at ``company_id``."""

        normalized = normalize_email(email)
        if normalized is None:
            return None
        stmt = (
            select(cls)
            .where(cls.company_id == company_id, cls.email == normalized)
            .order_by(cls.id.asc())
        )
        return session.scalars(stmt).first()


__all__ = ["RoletaParticipant"]
