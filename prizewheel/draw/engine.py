"""Uniform winner selection shared by the wheel spin and the organizer draw."""

from __future__ import annotations

import logging
import random
from typing import Optional, Sequence, TypeVar

from ..errors import EmptyPoolError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SYSTEM_RANDOM = random.SystemRandom()


def select_index(count: int, *, rng: Optional[random.Random] = None) -> int:
    """Return an index drawn uniformly from ``range(count)``.

    Parameters
    ----------
    count : int
        Number of candidates. Must be positive.
    rng : Optional[random.Random], default: None
        Source of randomness. Defaults to the operating system's RNG; tests
        pass a seeded :class:`random.Random`.

    Raises
    ------
    EmptyPoolError
        If ``count`` is zero or negative.
    """

    if count <= 0:
        raise EmptyPoolError("Cannot draw from an empty candidate pool")
    source = rng or _SYSTEM_RANDOM
    return source.randrange(count)


def select(candidates: Sequence[T], *, rng: Optional[random.Random] = None) -> T:
    """Pick one element of ``candidates`` uniformly at random.

    Every call is independent. The returned object is always one of the
    elements passed in; callers persist the outcome themselves.

    Raises
    ------
    EmptyPoolError
        If ``candidates`` is empty. Callers should check eligibility first and
        show a "no eligible candidates" state instead of calling this.
    """

    index = select_index(len(candidates), rng=rng)
    logger.debug(f"Selected candidate {index} of {len(candidates)}")
    return candidates[index]


__all__ = ["select", "select_index"]
