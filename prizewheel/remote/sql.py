"""Data service backed directly by the SQLAlchemy models."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..errors import (
    AlreadyParticipatedError,
    DuplicateParticipantError,
    PrizeInUseError,
    RecordNotFoundError,
    RemoteUnavailableError,
)
from ..models import (
    Collaborator,
    Company,
    Prize,
    Raffle,
    RaffleParticipant,
    RaffleWinner,
    RoletaParticipant,
)
from ..models.utils import mask_email, normalize_email
from .records import (
    CollaboratorRecord,
    CompanyRecord,
    ParticipantRecord,
    PrizeRecord,
    RaffleEntryRecord,
    RaffleRecord,
    RaffleWinnerRecord,
)

logger = logging.getLogger(__name__)


class SqlDataService:
    """:class:`~prizewheel.remote.base.DataService` over a SQLAlchemy sessionmaker.

    Each call runs in its own transaction and returns detached value objects,
    so callers never hold on to ORM state between calls.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._Session = session_factory

    @contextmanager
    def _transaction(
        self, action: str, *, on_conflict: Optional[Exception] = None
    ) -> Iterator[Session]:
        try:
            with self._Session.begin() as session:
                yield session
        except IntegrityError as exc:
            if on_conflict is not None:
                raise on_conflict from exc
            logger.warning(f"Integrity error while trying to {action}: {exc}")
            raise RemoteUnavailableError(f"Failed to {action}") from exc
        except SQLAlchemyError as exc:
            logger.warning(f"Database error while trying to {action}: {exc}")
            raise RemoteUnavailableError(f"Failed to {action}") from exc

    # -------- companies & prizes --------
    def get_company(self, company_id: int) -> Optional[CompanyRecord]:
        with self._transaction("load company") as session:
            company = session.get(Company, company_id)
            return CompanyRecord.from_model(company) if company is not None else None

    def list_prizes(self, company_id: int) -> list[PrizeRecord]:
        with self._transaction("load prizes") as session:
            return [
                PrizeRecord.from_model(p)
                for p in Prize.list_for_company(session, company_id)
            ]

    def _company_prize(self, session: Session, company_id: int, prize_id: int) -> Prize:
        prize = session.get(Prize, prize_id)
        if prize is None or prize.company_id != company_id:
            raise RecordNotFoundError(
                f"Prize {prize_id} does not exist for company {company_id}"
            )
        return prize

    def save_prize(
        self,
        company_id: int,
        *,
        name: str,
        prize_id: Optional[int] = None,
        position: Optional[int] = None,
    ) -> PrizeRecord:
        name = (name or "").strip()
        if not name:
            raise ValueError("Prize name must not be empty")
        with self._transaction("save prize") as session:
            if prize_id is None:
                if position is None:
                    position = Prize.next_position(session, company_id)
                prize = Prize(name=name, company_id=company_id, position=position)
                session.add(prize)
                session.flush()
                logger.info(f"Added prize {prize.id} to company {company_id}")
                return PrizeRecord.from_model(prize)

            prize = self._company_prize(session, company_id, prize_id)
            if name != prize.name and prize.has_winners(session):
                raise PrizeInUseError(
                    "Prize was already won and cannot be renamed", prize_id=prize_id
                )
            prize.name = name
            if position is not None:
                prize.position = position
            session.flush()
            return PrizeRecord.from_model(prize)

    def delete_prize(self, company_id: int, prize_id: int) -> None:
        with self._transaction("delete prize") as session:
            prize = self._company_prize(session, company_id, prize_id)
            if prize.has_winners(session):
                raise PrizeInUseError(
                    "Prize was already won and cannot be deleted", prize_id=prize_id
                )
            session.delete(prize)
            logger.info(f"Deleted prize {prize_id} of company {company_id}")

    def find_collaborator(
        self, company_id: int, code: str
    ) -> Optional[CollaboratorRecord]:
        if not code or not code.strip():
            return None
        with self._transaction("verify collaborator code") as session:
            collaborator = Collaborator.get_by_code(session, company_id, code)
            if collaborator is None:
                return None
            return CollaboratorRecord.from_model(collaborator)

    # -------- wheel participants --------
    def find_participant_by_email(
        self, company_id: int, email: str
    ) -> Optional[ParticipantRecord]:
        with self._transaction("look up participant") as session:
            participant = RoletaParticipant.get_by_email(session, company_id, email)
            if participant is None:
                return None
            return ParticipantRecord.from_model(participant)

    def get_participant(self, participant_id: int) -> Optional[ParticipantRecord]:
        with self._transaction("load participant") as session:
            participant = session.get(RoletaParticipant, participant_id)
            if participant is None:
                return None
            return ParticipantRecord.from_model(participant)

    def insert_participant(
        self,
        company_id: int,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        unique: bool = False,
    ) -> ParticipantRecord:
        normalized = normalize_email(email)
        with self._transaction("register participant") as session:
            if unique and normalized is not None:
                # Lock the company row so concurrent registrations for the
                # same stand are serialized around the duplicate check.
                session.scalar(
                    select(Company.id).where(Company.id == company_id).with_for_update()
                )
                existing = RoletaParticipant.get_by_email(session, company_id, normalized)
                if existing is not None:
                    raise DuplicateParticipantError(
                        "E-mail already registered for this company",
                        participant_id=existing.id,
                    )

            participant = RoletaParticipant(
                name=name,
                email=normalized,
                phone=phone,
                company_id=company_id,
            )
            session.add(participant)
            session.flush()
            logger.debug(
                f"Registered participant {participant.id} ({mask_email(normalized)}) "
                f"for company {company_id}"
            )
            return ParticipantRecord.from_model(participant)

    def record_spin(
        self,
        participant_id: int,
        *,
        prize_id: Optional[int],
        prize_name: str,
        spun_at: datetime,
    ) -> ParticipantRecord:
        with self._transaction("save spin result") as session:
            # Conditional update: an existing spun_at is never overwritten.
            result = session.execute(
                update(RoletaParticipant)
                .where(
                    RoletaParticipant.id == participant_id,
                    RoletaParticipant.spun_at.is_(None),
                )
                .values(prize_id=prize_id, prize_name=prize_name, spun_at=spun_at)
                .execution_options(synchronize_session=False)
            )
            participant = session.get(RoletaParticipant, participant_id)
            if participant is None:
                raise RecordNotFoundError(f"Participant {participant_id} does not exist")
            if result.rowcount == 0:
                raise AlreadyParticipatedError(
                    "Participant has already spun the wheel",
                    participant_id=participant_id,
                )
            session.refresh(participant)
            return ParticipantRecord.from_model(participant)

    def list_spin_history(self, company_id: int) -> list[ParticipantRecord]:
        with self._transaction("load spin history") as session:
            stmt = (
                select(RoletaParticipant)
                .where(RoletaParticipant.company_id == company_id)
                .order_by(
                    RoletaParticipant.spun_at.desc().nulls_first(),
                    RoletaParticipant.id.desc(),
                )
            )
            return [ParticipantRecord.from_model(p) for p in session.scalars(stmt).all()]

    # -------- organizer raffles --------
    def list_event_raffles(self, event_id: int) -> list[RaffleRecord]:
        with self._transaction("load raffles") as session:
            stmt = select(Raffle).where(Raffle.event_id == event_id).order_by(Raffle.id)
            return [RaffleRecord.from_model(r) for r in session.scalars(stmt).all()]

    def list_raffle_participants(
        self, raffle_ids: Iterable[int]
    ) -> list[RaffleEntryRecord]:
        ids = list(raffle_ids)
        if not ids:
            return []
        with self._transaction("load raffle participants") as session:
            stmt = (
                select(RaffleParticipant)
                .where(RaffleParticipant.raffle_id.in_(ids))
                .order_by(RaffleParticipant.id.asc())
            )
            return [RaffleEntryRecord.from_model(e) for e in session.scalars(stmt).all()]

    def list_raffle_winners(self, raffle_ids: Iterable[int]) -> list[RaffleWinnerRecord]:
        ids = list(raffle_ids)
        if not ids:
            return []
        with self._transaction("load raffle winners") as session:
            stmt = (
                select(RaffleWinner)
                .where(RaffleWinner.raffle_id.in_(ids))
                .order_by(RaffleWinner.drawn_at.asc(), RaffleWinner.id.asc())
            )
            return [RaffleWinnerRecord.from_model(w) for w in session.scalars(stmt).all()]

    def record_raffle_winner(
        self, raffle_id: int, participant_id: int, *, drawn_at: datetime
    ) -> RaffleWinnerRecord:
        conflict = AlreadyParticipatedError(
            "Participant has already won this raffle", participant_id=participant_id
        )
        with self._transaction("save raffle winner", on_conflict=conflict) as session:
            winner = RaffleWinner(
                raffle_id=raffle_id,
                participant_id=participant_id,
                drawn_at=drawn_at,
            )
            session.add(winner)
            session.flush()
            return RaffleWinnerRecord.from_model(winner)


__all__ = ["SqlDataService"]
