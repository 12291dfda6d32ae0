"""Events, raffles, raffle entries and drawn winners."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from .base import ID_TYPE, Base, utcnow
from .utils import normalize_email, normalize_optional_text


class Event(Base):
    """Organizer event grouping one or more raffles."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    raffles: Mapped[list["Raffle"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        order_by=lambda: Raffle.id,
    )

    def __init__(self, *, name: str) -> None:
        self.name = name


class Raffle(Base):
    """A single raffle of an event."""

    __tablename__ = "raffles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    event: Mapped["Event"] = relationship(back_populates="raffles")
    participants: Mapped[list["RaffleParticipant"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
    )
    winners: Mapped[list["RaffleWinner"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
    )

    def __init__(
        self,
        *,
        name: str,
        event: Optional[Event] = None,
        event_id: Optional[int] = None,
    ) -> None:
        self.name = name
        if event is not None:
            self.event = event
        if event_id is not None:
            self.event_id = event_id

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<Raffle(id={self.id}, event_id={self.event_id}, name='{self.name}')>"


class RaffleParticipant(Base):
    """One entry in one raffle.

    Somebody entered in several raffles has one row per raffle, and each row
    is a separate chance to be drawn.
    """

    __tablename__ = "raffle_participants"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="participants")

    def __init__(
        self,
        *,
        name: str,
        raffle: Optional[Raffle] = None,
        raffle_id: Optional[int] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> None:
        self.name = name
        self.email = email
        self.phone = phone
        if raffle is not None:
            self.raffle = raffle
        if raffle_id is not None:
            self.raffle_id = raffle_id

    @validates("email")
    def _normalize_email(self, _key: str, value: Optional[str]) -> Optional[str]:
        return normalize_email(value)

    @validates("phone")
    def _normalize_phone(self, _key: str, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<RaffleParticipant(id={self.id}, raffle_id={self.raffle_id}, name='{self.name}')>"


class RaffleWinner(Base):
    """Records that ``participant_id`` was drawn in ``raffle_id``."""

    __tablename__ = "raffle_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False, index=True
    )
    participant_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("raffle_participants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    drawn_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="winners")
    participant: Mapped["RaffleParticipant"] = relationship()

    __table_args__ = (
        UniqueConstraint(
            "raffle_id", "participant_id", name="uq_raffle_winner_per_participant"
        ),
    )

    def __init__(
        self,
        *,
        raffle_id: int,
        participant_id: int,
        drawn_at: Optional[datetime] = None,
    ) -> None:
        self.raffle_id = raffle_id
        self.participant_id = participant_id
        if drawn_at is not None:
            self.drawn_at = drawn_at


__all__ = ["Event", "Raffle", "RaffleParticipant", "RaffleWinner"]
