"""Interface of the data service consumed by the draw core."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol

from .records import (
    CollaboratorRecord,
    CompanyRecord,
    ParticipantRecord,
    PrizeRecord,
    RaffleEntryRecord,
    RaffleRecord,
    RaffleWinnerRecord,
)


class DataService(Protocol):
    """Request/response operations against the store of companies and participants.

    Every method may raise :class:`~prizewheel.errors.RemoteUnavailableError`
    when the service cannot be reached or the write fails.
    """

    def get_company(self, company_id: int) -> Optional[CompanyRecord]: ...

    def list_prizes(self, company_id: int) -> list[PrizeRecord]:
        """Return the company's prizes in wheel slice order."""
        ...

    def save_prize(
        self,
        company_id: int,
        *,
        name: str,
        prize_id: Optional[int] = None,
        position: Optional[int] = None,
    ) -> PrizeRecord:
        """Add a prize, or update ``prize_id`` when given.

        New prizes are appended after the company's last slice unless
        ``position`` is set. Renaming a prize that a participant already won
        raises :class:`~prizewheel.errors.PrizeInUseError`; an unknown
        ``prize_id`` raises :class:`~prizewheel.errors.RecordNotFoundError`.
        """
        ...

    def delete_prize(self, company_id: int, prize_id: int) -> None:
        """Remove a prize nobody has won yet."""
        ...

    def find_participant_by_email(
        self, company_id: int, email: str
    ) -> Optional[ParticipantRecord]: ...

    def get_participant(self, participant_id: int) -> Optional[ParticipantRecord]: ...

    def insert_participant(
        self,
        company_id: int,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        unique: bool = False,
    ) -> ParticipantRecord:
        """Create a participant.

        With ``unique=True`` the service itself rejects a second participant
        with the same e-mail for the company by raising
        :class:`~prizewheel.errors.DuplicateParticipantError`.
        """
        ...

    def record_spin(
        self,
        participant_id: int,
        *,
        prize_id: Optional[int],
        prize_name: str,
        spun_at: datetime,
    ) -> ParticipantRecord:
        """Set the prize and spin time of a participant that has not spun yet.

        Raises :class:`~prizewheel.errors.AlreadyParticipatedError` instead of
        overwriting an existing ``spun_at`` and
        :class:`~prizewheel.errors.RecordNotFoundError` for an unknown id.
        """
        ...

    def find_collaborator(
        self, company_id: int, code: str
    ) -> Optional[CollaboratorRecord]: ...

    def list_spin_history(self, company_id: int) -> list[ParticipantRecord]:
        """Return participants ordered by ``spun_at`` descending, unspun first."""
        ...

    def list_event_raffles(self, event_id: int) -> list[RaffleRecord]: ...

    def list_raffle_participants(
        self, raffle_ids: Iterable[int]
    ) -> list[RaffleEntryRecord]: ...

    def list_raffle_winners(self, raffle_ids: Iterable[int]) -> list[RaffleWinnerRecord]: ...

    def record_raffle_winner(
        self, raffle_id: int, participant_id: int, *, drawn_at: datetime
    ) -> RaffleWinnerRecord: ...


__all__ = ["DataService"]
