"""Draw core: selection, eligibility, wheel angles, spin sessions and participation."""

from . import angle
from .eligibility import (
    MIN_DRAW_PARTICIPANTS,
    MIN_WHEEL_PRIZES,
    RaffleSelection,
    ensure_wheel_prizes,
    filter_eligible,
)
from .engine import select, select_index
from .guard import (
    ParticipationGuard,
    ParticipationRecord,
    RegistrationOutcome,
    RegistrationStatus,
)
from .session import SpinFrame, SpinPhase, SpinSession

__all__ = [
    "MIN_DRAW_PARTICIPANTS",
    "MIN_WHEEL_PRIZES",
    "ParticipationGuard",
    "ParticipationRecord",
    "RaffleSelection",
    "RegistrationOutcome",
    "RegistrationStatus",
    "SpinFrame",
    "SpinPhase",
    "SpinSession",
    "angle",
    "ensure_wheel_prizes",
    "filter_eligible",
    "select",
    "select_index",
]
