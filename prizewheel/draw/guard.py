"""At-most-once participation for a company's wheel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from ..config import UniquenessMode
from ..errors import AlreadyParticipatedError, DuplicateParticipantError
from ..flags import FlagStore, spun_flag_key
from ..models.utils import generate_session_key, mask_email, normalize_email
from ..remote.records import ParticipantRecord, PrizeRecord

if TYPE_CHECKING:
    from ..remote.base import DataService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParticipationRecord:
    """Durable fact that a participant spun and won a prize at a time."""

    participant_id: int
    prize_id: Optional[int]
    prize_name: str
    spun_at: datetime


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    ALREADY_PARTICIPATED = "already_participated"


@dataclass(frozen=True)
class RegistrationOutcome:
    status: RegistrationStatus
    participant: Optional[ParticipantRecord] = None

    @property
    def already_participated(self) -> bool:
        return self.status is RegistrationStatus.ALREADY_PARTICIPATED


class ParticipationGuard:
    """Combine the device-local flag with the data service's participant records.

    The local flag only blocks re-entry from this device. The data service
    decides whether an e-mail already took part at the company. Whenever the
    data service reports an earlier participation, the local flag is set too.

    Parameters
    ----------
    service : DataService
        Source of truth for registrations and spin results.
    flags : FlagStore
        Device-local store; the key is ``spun_roleta_<company_id>``.
    company_id : int
        Company whose wheel is guarded.
    uniqueness : UniquenessMode, default: UniquenessMode.RELAXED
        ``STRICT`` asks the data service to reject duplicate e-mails on insert.
    """

    def __init__(
        self,
        service: "DataService",
        flags: FlagStore,
        company_id: int,
        *,
        uniqueness: UniquenessMode = UniquenessMode.RELAXED,
    ) -> None:
        self._service = service
        self._flags = flags
        self.company_id = company_id
        self.uniqueness = uniqueness
        self._spent: Optional[bool] = None
        self._committed_keys: set[str] = set()
        self._session_key = generate_session_key()

    @property
    def flag_key(self) -> str:
        return spun_flag_key(self.company_id)

    @property
    def spent(self) -> bool:
        """Whether this device already participated. Reads the store on first use."""

        if self._spent is None:
            self._spent = self._flags.get(self.flag_key)
        return self._spent

    def bootstrap(self) -> bool:
        """Read the local flag at load time and return it."""

        self._spent = self._flags.get(self.flag_key)
        if self._spent:
            logger.info(f"Company {self.company_id}: device already participated")
        return self._spent

    def participant_key(self, participant: Optional[ParticipantRecord] = None) -> str:
        """Identity used for de-duplication: the e-mail, else this session's key."""

        if participant is not None and participant.email:
            return participant.email
        return self._session_key

    def _mark_spent(self) -> None:
        self._flags.set(self.flag_key, True)
        self._spent = True

    def check_eligible(self, participant_key: Optional[str] = None) -> bool:
        """Return ``True`` while ``participant_key`` may still spin.

        The local flag and this process's commits are consulted first. For an
        e-mail key the data service is asked whether that e-mail already spun
        at the company; a positive answer also sets the local flag.
        """

        if self.spent:
            return False
        key = participant_key or self._session_key
        if key in self._committed_keys:
            return False
        email = normalize_email(key) if "@" in key else None
        if email is None:
            return True
        existing = self._service.find_participant_by_email(self.company_id, email)
        if existing is not None and existing.has_spun:
            self._mark_spent()
            return False
        return True

    def register(
        self,
        *,
        name: str,
        email: Optional[str] = None,
        phone: Optional[str] = None,
    ) -> RegistrationOutcome:
        """Register a participant unless the device or e-mail already took part.

        The data service check runs before the insert. Raises
        :class:`~prizewheel.errors.RemoteUnavailableError` when the service
        fails; the local flag is not touched in that case.
        """

        if self.spent:
            return RegistrationOutcome(RegistrationStatus.ALREADY_PARTICIPATED)

        normalized = normalize_email(email)
        if normalized is not None:
            existing = self._service.find_participant_by_email(self.company_id, normalized)
            if existing is not None:
                logger.info(
                    f"Company {self.company_id}: {mask_email(normalized)} already registered"
                )
                self._mark_spent()
                return RegistrationOutcome(
                    RegistrationStatus.ALREADY_PARTICIPATED, participant=existing
                )

        try:
            participant = self._service.insert_participant(
                self.company_id,
                name=name,
                email=normalized,
                phone=phone,
                unique=self.uniqueness is UniquenessMode.STRICT,
            )
        except DuplicateParticipantError:
            logger.info(
                f"Company {self.company_id}: insert rejected for {mask_email(normalized)}"
            )
            self._mark_spent()
            return RegistrationOutcome(RegistrationStatus.ALREADY_PARTICIPATED)
        return RegistrationOutcome(RegistrationStatus.REGISTERED, participant=participant)

    def commit(
        self,
        participant: ParticipantRecord,
        prize: PrizeRecord,
        *,
        when: Optional[datetime] = None,
    ) -> ParticipationRecord:
        """Persist the spin result, then set the local flag.

        Raises
        ------
        AlreadyParticipatedError
            If the participant was already committed or the data service holds
            an earlier spin for them. The local flag is set in the latter case.
        RemoteUnavailableError
            If the write fails. The local flag stays unset so the save can be
            retried.
        """

        key = self.participant_key(participant)
        if key in self._committed_keys:
            raise AlreadyParticipatedError(
                "Spin result already saved", participant_id=participant.id
            )

        spun_at = when or datetime.now(timezone.utc)
        try:
            stored = self._service.record_spin(
                participant.id,
                prize_id=prize.id,
                prize_name=prize.name,
                spun_at=spun_at,
            )
        except AlreadyParticipatedError:
            self._committed_keys.add(key)
            self._mark_spent()
            raise

        self._committed_keys.add(key)
        self._mark_spent()
        logger.info(
            f"Company {self.company_id}: participant {participant.id} won '{prize.name}'"
        )
        return ParticipationRecord(
            participant_id=stored.id,
            prize_id=stored.prize_id,
            prize_name=stored.prize_name or prize.name,
            spun_at=stored.spun_at or spun_at,
        )


__all__ = [
    "ParticipationGuard",
    "ParticipationRecord",
    "RegistrationOutcome",
    "RegistrationStatus",
]
