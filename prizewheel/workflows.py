"""User-facing flows built on the draw core.

* :class:`WheelKiosk`: attendee registers, a collaborator unlocks the wheel,
  the attendee spins once.
* :class:`CollaboratorWheel`: stand staff preview spins and see history.
* :class:`OrganizerDraw`: event organizer draws raffle winners.

Data service calls are blocking, so they run through :func:`asyncio.to_thread`
and the flows stay responsive on the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Iterable, Optional

from .config import Settings, load_settings
from .draw.eligibility import RaffleSelection, ensure_wheel_prizes, filter_eligible
from .draw.guard import ParticipationGuard, ParticipationRecord
from .draw.session import SpinFrame, SpinPhase, SpinSession
from .errors import (
    AlreadyParticipatedError,
    InvalidCodeError,
    PrizeInUseError,
    RecordNotFoundError,
    RemoteUnavailableError,
)
from .flags import FlagStore, JsonFileFlagStore, MemoryFlagStore
from .models.utils import mask_phone
from .remote.records import (
    CollaboratorRecord,
    CompanyRecord,
    ParticipantRecord,
    PrizeRecord,
    RaffleEntryRecord,
)

if TYPE_CHECKING:
    from .remote.base import DataService

logger = logging.getLogger(__name__)

MSG_NAME_REQUIRED = "Please enter your name."
MSG_REGISTRATION_FAILED = "Registration failed, please try again."
MSG_ALREADY_PARTICIPATED = "This e-mail has already spun this stand's wheel."
MSG_CODE_REQUIRED = "Please enter the collaborator code."
MSG_CODE_INVALID = "Invalid collaborator code."
MSG_CODE_CHECK_FAILED = "Could not verify the code, please try again."
MSG_NOT_ENOUGH_PRIZES = "At least two prizes are needed to spin the wheel."
MSG_SAVE_FAILED = "Your prize could not be saved yet. Please ask the stand staff to retry."
MSG_PRIZES_LOAD_FAILED = "Could not load the prizes, please try again."
MSG_HISTORY_LOAD_FAILED = "Could not load the spin history, please try again."
MSG_PRIZE_NAME_REQUIRED = "Please enter the prize name."
MSG_PRIZE_SAVE_FAILED = "Could not save the prize, please try again."
MSG_PRIZE_IN_USE = "This prize was already won and cannot be changed."
MSG_PRIZE_NOT_FOUND = "This prize no longer exists."
MSG_SPIN_IN_PROGRESS = "Wait for the spin to finish before editing prizes."
MSG_POOL_LOAD_FAILED = "Could not load the raffle participants, please try again."
MSG_WINNER_SAVE_FAILED = "The winner could not be saved. Please retry."
MSG_DRAW_UNSAVED = "Save the current winner before drawing again."


def verify_collaborator_code(
    service: "DataService", company_id: int, code: str
) -> CollaboratorRecord:
    """Return the collaborator owning ``code`` at ``company_id``.

    The code is compared case-insensitively.

    Raises
    ------
    InvalidCodeError
        If the code is blank or matches no collaborator of the company.
    RemoteUnavailableError
        If the data service cannot be reached.
    """

    if not code or not code.strip():
        raise InvalidCodeError("Collaborator code is required")
    collaborator = service.find_collaborator(company_id, code.strip().upper())
    if collaborator is None:
        raise InvalidCodeError("Collaborator code does not match this company")
    return collaborator


def spin_history(service: "DataService", company_id: int) -> list[ParticipantRecord]:
    """Return a company's participants, most recent spin first, unspun on top."""

    return service.list_spin_history(company_id)


def make_flag_store(settings: Settings) -> FlagStore:
    if settings.flag_store_path is not None:
        return JsonFileFlagStore(settings.flag_store_path)
    return MemoryFlagStore()


class KioskStep(str, Enum):
    LOADING = "loading"
    REGISTER = "register"
    VERIFY_COLLABORATOR = "verify_collaborator"
    SPIN = "spin"
    SPUN = "spun"
    ERROR = "error"
    ALREADY_PARTICIPATED = "already_participated"


class WheelKiosk:
    """Attendee-facing wheel for one company, one browsing session."""

    def __init__(
        self,
        service: "DataService",
        flags: FlagStore,
        company_id: int,
        *,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        extra_turns: Optional[int] = None,
    ) -> None:
        self._service = service
        self.company_id = company_id
        self.settings = settings or load_settings()
        self.guard = ParticipationGuard(
            service, flags, company_id, uniqueness=self.settings.uniqueness
        )
        self._rng = rng
        self._extra_turns = extra_turns

        self.step = KioskStep.LOADING
        self.company: Optional[CompanyRecord] = None
        self.prizes: list[PrizeRecord] = []
        self.participant: Optional[ParticipantRecord] = None
        self.winner: Optional[PrizeRecord] = None
        self.record: Optional[ParticipationRecord] = None
        self.form_error: Optional[str] = None
        self.is_submitting = False
        self.session: Optional[SpinSession[PrizeRecord]] = None
        self.frames: list[SpinFrame] = []

    @classmethod
    def from_settings(
        cls, company_id: int, settings: Optional[Settings] = None
    ) -> "WheelKiosk":
        from .remote import make_data_service

        settings = settings or load_settings()
        return cls(
            make_data_service(settings),
            make_flag_store(settings),
            company_id,
            settings=settings,
        )

    @property
    def persist_error(self) -> Optional[str]:
        return self.session.persist_error if self.session is not None else None

    def _require_step(self, expected: KioskStep) -> None:
        if self.step is not expected:
            raise RuntimeError(
                f"Expected kiosk step {expected.value!r}, currently {self.step.value!r}"
            )

    async def load(self) -> KioskStep:
        """Fetch the company and its prizes, honouring the local participation flag."""

        try:
            company = await asyncio.to_thread(self._service.get_company, self.company_id)
        except RemoteUnavailableError:
            logger.exception(f"Failed to load company {self.company_id}")
            self.step = KioskStep.ERROR
            return self.step
        if company is None:
            logger.warning(f"Company {self.company_id} not found")
            self.step = KioskStep.ERROR
            return self.step
        self.company = company

        if self.guard.bootstrap():
            self.step = KioskStep.ALREADY_PARTICIPATED
            return self.step

        try:
            self.prizes = await asyncio.to_thread(self._service.list_prizes, self.company_id)
        except RemoteUnavailableError:
            # The form still works; the wheel just shows no prizes.
            logger.exception(f"Failed to load prizes for company {self.company_id}")
            self.prizes = []
        self.step = KioskStep.REGISTER
        return self.step

    async def register(
        self, name: str, email: Optional[str] = None, phone: Optional[str] = None
    ) -> KioskStep:
        """Register the attendee; an e-mail seen before ends the flow."""

        self._require_step(KioskStep.REGISTER)
        if self.is_submitting:
            return self.step
        self.form_error = None

        name = (name or "").strip()
        if not name:
            self.form_error = MSG_NAME_REQUIRED
            return self.step

        self.is_submitting = True
        try:
            outcome = await asyncio.to_thread(
                self.guard.register, name=name, email=email, phone=phone
            )
        except RemoteUnavailableError:
            self.form_error = MSG_REGISTRATION_FAILED
            return self.step
        finally:
            self.is_submitting = False

        if outcome.already_participated:
            self.form_error = MSG_ALREADY_PARTICIPATED
            self.step = KioskStep.ALREADY_PARTICIPATED
            return self.step

        self.participant = outcome.participant
        self.step = KioskStep.VERIFY_COLLABORATOR
        return self.step

    async def verify_collaborator(self, code: str) -> KioskStep:
        """Unlock the wheel with a collaborator code. Mismatches change nothing."""

        self._require_step(KioskStep.VERIFY_COLLABORATOR)
        if self.is_submitting:
            return self.step
        self.form_error = None
        if not code or not code.strip():
            self.form_error = MSG_CODE_REQUIRED
            return self.step

        self.is_submitting = True
        try:
            await asyncio.to_thread(
                verify_collaborator_code, self._service, self.company_id, code
            )
        except InvalidCodeError:
            self.form_error = MSG_CODE_INVALID
            return self.step
        except RemoteUnavailableError:
            self.form_error = MSG_CODE_CHECK_FAILED
            return self.step
        finally:
            self.is_submitting = False

        self.step = KioskStep.SPIN
        return self.step

    def _on_frame(self, frame: SpinFrame) -> None:
        self.frames.append(frame)
        if frame.phase is SpinPhase.SETTLED and self.step is KioskStep.SPIN:
            self.winner = frame.winner
            self.step = KioskStep.SPUN

    async def _persist(self, prize: PrizeRecord) -> None:
        if self.participant is None:
            return
        try:
            self.record = await asyncio.to_thread(
                self.guard.commit, self.participant, prize
            )
        except AlreadyParticipatedError:
            self.step = KioskStep.ALREADY_PARTICIPATED
            raise

    async def start_spin(self) -> bool:
        """Arm a spin. Returns ``False`` if nothing was started.

        Calling it again while a spin is armed or running does nothing.
        """

        if self.step is not KioskStep.SPIN or self.session is not None:
            return False
        if not ensure_wheel_prizes(self.prizes):
            self.form_error = MSG_NOT_ENOUGH_PRIZES
            return False

        session: SpinSession[PrizeRecord] = SpinSession.for_wheel(
            self.prizes,
            on_settle=self._persist,
            duration_ms=self.settings.spin_duration_ms,
            render_delay_ms=self.settings.render_commit_delay_ms,
            extra_turns=self._extra_turns,
            rng=self._rng,
        )
        # Claim the slot before the eligibility round-trip so a double click
        # cannot arm two sessions.
        self.session = session
        key = self.guard.participant_key(self.participant)
        try:
            eligible = await asyncio.to_thread(self.guard.check_eligible, key)
        except RemoteUnavailableError:
            self.session = None
            self.form_error = MSG_REGISTRATION_FAILED
            return False
        if not eligible:
            self.session = None
            self.step = KioskStep.ALREADY_PARTICIPATED
            return False

        session.subscribe(self._on_frame)
        return session.start()

    async def wait_for_result(self) -> Optional[PrizeRecord]:
        """Wait until the running spin settles and return the prize won."""

        if self.session is None:
            return None
        winner = await self.session.wait_settled()
        if self.session.persist_error is not None and self.step is KioskStep.SPUN:
            self.form_error = MSG_SAVE_FAILED
        return winner

    async def retry_save(self) -> bool:
        """Retry saving a settled spin whose first save failed."""

        if self.session is None or self.session.phase is not SpinPhase.SETTLED:
            return False
        saved = await self.session.retry_commit()
        self.form_error = None if saved else MSG_SAVE_FAILED
        return saved

    def teardown(self) -> None:
        """Leave the page: a spin that has not settled is cancelled and never saved."""

        if self.session is not None:
            self.session.close()


class CollaboratorWheel:
    """Stand staff view: preview spins that are not recorded, spin history and
    prize management.

    Data service failures never escape; they leave a user-facing message in
    ``error`` instead.
    """

    def __init__(
        self,
        service: "DataService",
        company_id: int,
        *,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._service = service
        self.company_id = company_id
        self.settings = settings or load_settings()
        self._rng = rng
        self.prizes: list[PrizeRecord] = []
        self.session: Optional[SpinSession[PrizeRecord]] = None
        self.error: Optional[str] = None

    async def load_prizes(self) -> list[PrizeRecord]:
        """Refresh ``prizes``. On failure the previous list is kept and ``[]`` returned."""

        try:
            prizes = await asyncio.to_thread(self._service.list_prizes, self.company_id)
        except RemoteUnavailableError:
            logger.exception(f"Failed to load prizes for company {self.company_id}")
            self.error = MSG_PRIZES_LOAD_FAILED
            return []
        self.error = None
        self.prizes = prizes
        return self.prizes

    @property
    def is_spinning(self) -> bool:
        return self.session is not None and self.session.phase in (
            SpinPhase.ARMED,
            SpinPhase.SPINNING,
        )

    async def spin(self) -> Optional[PrizeRecord]:
        """Run a preview spin and return the prize it lands on.

        Returns ``None`` when a spin is already running, there are fewer than
        two prizes, or the view was torn down mid-spin.
        """

        if self.is_spinning:
            return None
        rotation = self.session.rotation_deg if self.session is not None else 0.0
        session: SpinSession[PrizeRecord] = SpinSession.for_wheel(
            self.prizes,
            duration_ms=self.settings.spin_duration_ms,
            render_delay_ms=self.settings.render_commit_delay_ms,
            rng=self._rng,
            initial_rotation=rotation,
        )
        if not session.start():
            return None
        self.session = session
        return await session.wait_settled()

    async def history(self) -> list[ParticipantRecord]:
        try:
            return await asyncio.to_thread(spin_history, self._service, self.company_id)
        except RemoteUnavailableError:
            logger.exception(f"Failed to load spin history for company {self.company_id}")
            self.error = MSG_HISTORY_LOAD_FAILED
            return []

    async def save_prize(
        self,
        name: str,
        *,
        prize_id: Optional[int] = None,
        position: Optional[int] = None,
    ) -> Optional[PrizeRecord]:
        """Add a prize (or rename/move ``prize_id``) and reload the wheel.

        Returns the stored prize, or ``None`` with ``error`` set. Prizes that
        were already won keep their name.
        """

        if self.is_spinning:
            self.error = MSG_SPIN_IN_PROGRESS
            return None
        name = (name or "").strip()
        if not name:
            self.error = MSG_PRIZE_NAME_REQUIRED
            return None
        try:
            prize = await asyncio.to_thread(
                self._service.save_prize,
                self.company_id,
                name=name,
                prize_id=prize_id,
                position=position,
            )
        except PrizeInUseError:
            self.error = MSG_PRIZE_IN_USE
            return None
        except RecordNotFoundError:
            self.error = MSG_PRIZE_NOT_FOUND
            return None
        except RemoteUnavailableError:
            logger.exception(f"Failed to save prize for company {self.company_id}")
            self.error = MSG_PRIZE_SAVE_FAILED
            return None
        await self.load_prizes()
        return prize

    async def delete_prize(self, prize_id: int) -> bool:
        """Remove a prize nobody has won yet and reload the wheel."""

        if self.is_spinning:
            self.error = MSG_SPIN_IN_PROGRESS
            return False
        try:
            await asyncio.to_thread(self._service.delete_prize, self.company_id, prize_id)
        except PrizeInUseError:
            self.error = MSG_PRIZE_IN_USE
            return False
        except RecordNotFoundError:
            self.error = MSG_PRIZE_NOT_FOUND
            return False
        except RemoteUnavailableError:
            logger.exception(f"Failed to delete prize {prize_id}")
            self.error = MSG_PRIZE_SAVE_FAILED
            return False
        await self.load_prizes()
        return True

    def teardown(self) -> None:
        if self.session is not None:
            self.session.close()


class OrganizerDraw:
    """Draw raffle winners across the raffles the organizer selected.

    A drawn winner must be saved before the next draw; when the save fails
    :meth:`draw` refuses to run until :meth:`retry_save` succeeds or the
    selection changes.
    """

    def __init__(
        self,
        service: "DataService",
        *,
        raffle_ids: Iterable[int] = (),
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._service = service
        self.settings = settings or load_settings()
        self._rng = rng
        self.selected_raffle_ids: list[int] = list(dict.fromkeys(raffle_ids))
        self.winner: Optional[RaffleEntryRecord] = None
        self.no_eligible = False
        self.error: Optional[str] = None
        self.session: Optional[SpinSession[RaffleEntryRecord]] = None

    @property
    def is_drawing(self) -> bool:
        return self.session is not None and self.session.phase in (
            SpinPhase.ARMED,
            SpinPhase.SPINNING,
        )

    @property
    def has_unsaved_winner(self) -> bool:
        return (
            self.session is not None
            and self.session.phase is SpinPhase.SETTLED
            and not self.session.committed
        )

    @property
    def countdown(self) -> Optional[int]:
        return self.session.countdown if self.session is not None else None

    @property
    def persist_error(self) -> Optional[str]:
        return self.session.persist_error if self.session is not None else None

    @property
    def winner_card(self) -> Optional[RaffleEntryRecord]:
        """The shown winner with the phone number masked."""

        if self.winner is None:
            return None
        return replace(self.winner, phone=mask_phone(self.winner.phone))

    def _reset(self) -> None:
        if self.session is not None:
            self.session.close()
        self.session = None
        self.winner = None
        self.no_eligible = False
        self.error = None

    def select_raffles(self, raffle_ids: Iterable[int]) -> None:
        """Replace the selection; any shown winner or running draw is cleared."""

        self._reset()
        self.selected_raffle_ids = list(dict.fromkeys(raffle_ids))

    def toggle_raffle(self, raffle_id: int) -> None:
        ids = list(self.selected_raffle_ids)
        if raffle_id in ids:
            ids.remove(raffle_id)
        else:
            ids.append(raffle_id)
        self.select_raffles(ids)

    def _load_pool(self) -> list[RaffleEntryRecord]:
        ids = list(self.selected_raffle_ids)
        if not ids:
            return []
        entries = self._service.list_raffle_participants(ids)
        winners = self._service.list_raffle_winners(ids)
        return filter_eligible(entries, RaffleSelection.from_winners(ids, winners))

    async def _fetch_pool(self) -> Optional[list[RaffleEntryRecord]]:
        try:
            pool = await asyncio.to_thread(self._load_pool)
        except RemoteUnavailableError:
            logger.exception(f"Failed to load the pool of raffles {self.selected_raffle_ids}")
            self.error = MSG_POOL_LOAD_FAILED
            return None
        if not self.has_unsaved_winner:
            self.error = None
        return pool

    async def eligible_pool(self) -> list[RaffleEntryRecord]:
        pool = await self._fetch_pool()
        return pool if pool is not None else []

    async def eligible_count(self) -> Optional[int]:
        """Number of entries that can still win, or ``None`` if it cannot be loaded."""

        pool = await self._fetch_pool()
        return len(pool) if pool is not None else None

    async def _record(self, entry: RaffleEntryRecord) -> None:
        try:
            await asyncio.to_thread(
                self._service.record_raffle_winner,
                entry.raffle_id,
                entry.id,
                drawn_at=datetime.now(timezone.utc),
            )
        except AlreadyParticipatedError:
            # A retry whose earlier attempt reached the store.
            logger.warning(
                f"Raffle {entry.raffle_id}: participant {entry.id} is already a winner"
            )
            return
        logger.info(f"Raffle {entry.raffle_id}: drew participant {entry.id}")

    async def draw(self) -> Optional[RaffleEntryRecord]:
        """Count down, draw one eligible entry and record it as a winner.

        Returns ``None`` when a draw is already running, when the previous
        winner is still unsaved, when the pool cannot be loaded (``error`` is
        set), when nobody is eligible (``no_eligible`` is set, nothing is
        drawn), or when the draw was cancelled.
        """

        if self.is_drawing:
            return None
        if self.has_unsaved_winner:
            self.error = MSG_DRAW_UNSAVED
            return None
        self.winner = None
        self.no_eligible = False
        self.error = None

        pool = await self._fetch_pool()
        if pool is None:
            return None
        if not pool:
            self.no_eligible = True
            return None
        if self.is_drawing or self.has_unsaved_winner:
            return None

        session: SpinSession[RaffleEntryRecord] = SpinSession.for_draw(
            pool,
            on_settle=self._record,
            duration_ms=self.settings.draw_countdown_ms,
            render_delay_ms=self.settings.render_commit_delay_ms,
            rng=self._rng,
        )
        self.session = session
        session.start()
        winner = await session.wait_settled()
        if session is self.session and winner is not None:
            self.winner = winner
            if not session.committed:
                self.error = MSG_WINNER_SAVE_FAILED
        return winner

    async def retry_save(self) -> bool:
        """Retry saving the shown winner after a failed save."""

        if self.session is None or self.session.phase is not SpinPhase.SETTLED:
            return False
        saved = await self.session.retry_commit()
        self.error = None if saved else MSG_WINNER_SAVE_FAILED
        return saved

    def teardown(self) -> None:
        if self.session is not None:
            self.session.close()


__all__ = [
    "CollaboratorWheel",
    "KioskStep",
    "OrganizerDraw",
    "WheelKiosk",
    "make_flag_store",
    "spin_history",
    "verify_collaborator_code",
]
