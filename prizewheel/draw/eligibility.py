"""Narrow a participant pool down to the entries that may still be drawn."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Protocol, Sequence, TypeVar

# A wheel with a single slice has nothing to spin between.
MIN_WHEEL_PRIZES = 2
MIN_DRAW_PARTICIPANTS = 1


class RaffleEntryLike(Protocol):
    id: int
    raffle_id: int


class WinnerLike(Protocol):
    raffle_id: int
    participant_id: int


E = TypeVar("E", bound=RaffleEntryLike)


@dataclass(frozen=True)
class RaffleSelection:
    """Raffles picked by the organizer plus the winners already drawn in them.

    Attributes
    ----------
    raffle_ids : frozenset[int]
        Raffles whose entries form the pool.
    winners : frozenset[tuple[int, int]]
        ``(raffle_id, participant_id)`` pairs that have already won.
    """

    raffle_ids: frozenset[int]
    winners: frozenset[tuple[int, int]] = field(default_factory=frozenset)

    @classmethod
    def from_winners(
        cls, raffle_ids: Iterable[int], winners: Iterable[WinnerLike]
    ) -> "RaffleSelection":
        return cls(
            raffle_ids=frozenset(raffle_ids),
            winners=frozenset((w.raffle_id, w.participant_id) for w in winners),
        )

    def has_won(self, entry: RaffleEntryLike) -> bool:
        return (entry.raffle_id, entry.id) in self.winners


def filter_eligible(pool: Iterable[E], selection: RaffleSelection) -> list[E]:
    """Return the entries of ``pool`` that can still win in ``selection``.

    An entry qualifies when it belongs to one of the selected raffles and has
    not already been drawn in that raffle. Entries of the same person in
    different raffles are kept separately. Input order is preserved and an
    empty list is returned when nothing qualifies.
    """

    return [
        entry
        for entry in pool
        if entry.raffle_id in selection.raffle_ids and not selection.has_won(entry)
    ]


def ensure_wheel_prizes(prizes: Sequence[object]) -> bool:
    """Return ``True`` when ``prizes`` has enough slices to spin."""

    return len(prizes) >= MIN_WHEEL_PRIZES


__all__ = [
    "MIN_DRAW_PARTICIPANTS",
    "MIN_WHEEL_PRIZES",
    "RaffleSelection",
    "ensure_wheel_prizes",
    "filter_eligible",
]
