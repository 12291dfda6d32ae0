"""Exception types shared across the prize wheel packages."""

from __future__ import annotations

from typing import Optional


class PrizeWheelError(Exception):
    """Base class for errors raised by this package."""


class EmptyPoolError(PrizeWheelError, ValueError):
    """Raised when a draw is attempted over zero candidates."""


class RecordNotFoundError(PrizeWheelError, LookupError):
    """A participant or prize referenced by id does not exist."""


class AlreadyParticipatedError(PrizeWheelError):
    """The participant already has a recorded spin or registration."""

    def __init__(self, message: str, *, participant_id: Optional[int] = None):
        super().__init__(message)
        self.participant_id = participant_id


class DuplicateParticipantError(AlreadyParticipatedError):
    """The data service rejected an insert because the e-mail is taken."""


class PrizeInUseError(PrizeWheelError):
    """A prize that participants already won cannot be renamed or deleted."""

    def __init__(self, message: str, *, prize_id: Optional[int] = None):
        super().__init__(message)
        self.prize_id = prize_id


class RemoteUnavailableError(PrizeWheelError):
    """A call to the data service failed; the caller may retry."""


class InvalidCodeError(PrizeWheelError):
    """The collaborator access code does not match the company."""


__all__ = [
    "AlreadyParticipatedError",
    "DuplicateParticipantError",
    "EmptyPoolError",
    "InvalidCodeError",
    "PrizeInUseError",
    "PrizeWheelError",
    "RecordNotFoundError",
    "RemoteUnavailableError",
]
