"""Plain value objects returned by data service implementations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional

if TYPE_CHECKING:
    from ..models import (
        Collaborator,
        Company,
        Prize,
        Raffle,
        RaffleParticipant,
        RaffleWinner,
        RoletaParticipant,
    )


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 value from a JSON row into an aware UTC datetime."""

    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class CompanyRecord:
    id: int
    name: str
    logo_url: Optional[str] = None

    @classmethod
    def from_model(cls, company: "Company") -> "CompanyRecord":
        return cls(id=company.id, name=company.name, logo_url=company.logo_url)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CompanyRecord":
        return cls(id=row["id"], name=row["name"], logo_url=row.get("logo_url"))


@dataclass(frozen=True)
class PrizeRecord:
    id: int
    name: str
    company_id: int
    position: int = 0

    @classmethod
    def from_model(cls, prize: "Prize") -> "PrizeRecord":
        return cls(
            id=prize.id,
            name=prize.name,
            company_id=prize.company_id,
            position=prize.position,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PrizeRecord":
        return cls(
            id=row["id"],
            name=row["name"],
            company_id=row["company_id"],
            position=row.get("position") or 0,
        )


@dataclass(frozen=True)
class ParticipantRecord:
    id: int
    company_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    prize_id: Optional[int] = None
    prize_name: Optional[str] = None
    spun_at: Optional[datetime] = None

    @property
    def has_spun(self) -> bool:
        return self.spun_at is not None

    @classmethod
    def from_model(cls, participant: "RoletaParticipant") -> "ParticipantRecord":
        return cls(
            id=participant.id,
            company_id=participant.company_id,
            name=participant.name,
            email=participant.email,
            phone=participant.phone,
            prize_id=participant.prize_id,
            prize_name=participant.prize_name,
            spun_at=parse_timestamp(participant.spun_at),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ParticipantRecord":
        return cls(
            id=row["id"],
            company_id=row["company_id"],
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
            prize_id=row.get("prize_id"),
            prize_name=row.get("prize_name"),
            spun_at=parse_timestamp(row.get("spun_at")),
        )


@dataclass(frozen=True)
class CollaboratorRecord:
    id: int
    company_id: int
    code: str
    name: Optional[str] = None

    @classmethod
    def from_model(cls, collaborator: "Collaborator") -> "CollaboratorRecord":
        return cls(
            id=collaborator.id,
            company_id=collaborator.company_id,
            code=collaborator.code,
            name=collaborator.name,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CollaboratorRecord":
        return cls(
            id=row["id"],
            company_id=row["company_id"],
            code=row["code"],
            name=row.get("name"),
        )


@dataclass(frozen=True)
class RaffleRecord:
    id: int
    name: str
    event_id: int

    @classmethod
    def from_model(cls, raffle: "Raffle") -> "RaffleRecord":
        return cls(id=raffle.id, name=raffle.name, event_id=raffle.event_id)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RaffleRecord":
        return cls(id=row["id"], name=row["name"], event_id=row["event_id"])


@dataclass(frozen=True)
class RaffleEntryRecord:
    id: int
    raffle_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_model(cls, entry: "RaffleParticipant") -> "RaffleEntryRecord":
        return cls(
            id=entry.id,
            raffle_id=entry.raffle_id,
            name=entry.name,
            email=entry.email,
            phone=entry.phone,
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RaffleEntryRecord":
        return cls(
            id=row["id"],
            raffle_id=row["raffle_id"],
            name=row["name"],
            email=row.get("email"),
            phone=row.get("phone"),
        )


@dataclass(frozen=True)
class RaffleWinnerRecord:
    id: int
    raffle_id: int
    participant_id: int
    drawn_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, winner: "RaffleWinner") -> "RaffleWinnerRecord":
        return cls(
            id=winner.id,
            raffle_id=winner.raffle_id,
            participant_id=winner.participant_id,
            drawn_at=parse_timestamp(winner.drawn_at),
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RaffleWinnerRecord":
        return cls(
            id=row["id"],
            raffle_id=row["raffle_id"],
            participant_id=row["participant_id"],
            drawn_at=parse_timestamp(row.get("drawn_at")),
        )


__all__ = [
    "CollaboratorRecord",
    "CompanyRecord",
    "ParticipantRecord",
    "PrizeRecord",
    "RaffleEntryRecord",
    "RaffleRecord",
    "RaffleWinnerRecord",
    "parse_timestamp",
]
