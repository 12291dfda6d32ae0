"""Rotation targets for the wheel animation.

Slices are laid out clockwise starting at 0 degrees and the pointer is fixed
at 0 degrees (the top of the wheel). The wheel is rotated by a negative angle
so that the winning slice travels round to meet the pointer.
"""

from __future__ import annotations

import math
import random
from typing import Optional

FULL_TURN = 360.0
MIN_EXTRA_TURNS = 4
MAX_EXTRA_TURNS = 5


def _angle_per_slice(slice_count: int) -> float:
    if slice_count < 1:
        raise ValueError("slice_count must be at least 1")
    return FULL_TURN / slice_count


def resolve(winner_index: int, slice_count: int, extra_turns: int) -> float:
    """Return the cumulative rotation, in degrees, that lands on ``winner_index``.

    The result does not depend on the wheel's previous rotation: rendering
    the returned value puts the pointer in the middle of the winning slice.

    Parameters
    ----------
    winner_index : int
        Index of the winning slice in wheel order.
    slice_count : int
        Number of slices on the wheel.
    extra_turns : int
        Whole turns added for effect. They do not affect which slice wins.

    Raises
    ------
    ValueError
        If ``slice_count`` is not positive, ``winner_index`` is out of range,
        or ``extra_turns`` is negative.
    """

    per_slice = _angle_per_slice(slice_count)
    if not 0 <= winner_index < slice_count:
        raise ValueError(
            f"winner_index {winner_index} out of range for {slice_count} slices"
        )
    if extra_turns < 0:
        raise ValueError("extra_turns must not be negative")

    target_within_slice = -(winner_index * per_slice + per_slice / 2)
    return extra_turns * FULL_TURN + target_within_slice


def random_extra_turns(rng: Optional[random.Random] = None) -> int:
    """Return a whole number of extra turns between 4 and 5 inclusive."""

    source = rng or random
    return source.randint(MIN_EXTRA_TURNS, MAX_EXTRA_TURNS)


def normalize(rotation: float) -> float:
    """Reduce ``rotation`` into ``[0, 360)`` without changing its orientation."""

    return rotation % FULL_TURN


def slice_under_pointer(rotation: float, slice_count: int) -> int:
    """Return the index of the slice sitting under the pointer at ``rotation``."""

    per_slice = _angle_per_slice(slice_count)
    # A wheel rotated by r shows, at the pointer, the wheel angle -r.
    wheel_angle = (-rotation) % FULL_TURN
    return int(math.floor(wheel_angle / per_slice)) % slice_count


__all__ = [
    "FULL_TURN",
    "MAX_EXTRA_TURNS",
    "MIN_EXTRA_TURNS",
    "normalize",
    "random_extra_turns",
    "resolve",
    "slice_under_pointer",
]
