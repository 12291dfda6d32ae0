"""Timed arm/spin/settle state machine for one draw attempt.

A :class:`SpinSession` belongs to a single UI session. It selects the winner
when it is armed, waits a short render-commit delay so the renderer can draw
the wheel at rest, then waits for the spin duration and settles. Settling
invokes the commit callback exactly once. Closing the session before it
settles cancels the pending timers and no commit happens.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, Sequence, TypeVar, Union

from . import angle
from .eligibility import MIN_DRAW_PARTICIPANTS, MIN_WHEEL_PRIZES
from .engine import select_index
from ..errors import PrizeWheelError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_SPIN_DURATION_MS = 5000
DEFAULT_RENDER_COMMIT_DELAY_MS = 50

SettleCallback = Callable[[T], Union[Awaitable[Any], Any]]


class SpinPhase(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    SPINNING = "spinning"
    SETTLED = "settled"


@dataclass(frozen=True)
class SpinFrame(Generic[T]):
    """What the rendering layer needs to draw one state of the session.

    Attributes
    ----------
    phase : SpinPhase
        Current phase.
    winner : Optional[T]
        Selected candidate once armed.
    winner_index : Optional[int]
        Position of ``winner`` in the candidate list.
    target_angle_deg : Optional[float]
        Rotation the wheel must reach; ``None`` for draws without a wheel.
    rotation_deg : float
        Rotation the renderer should apply now. While armed this is still the
        resting rotation; from ``spinning`` on it is the target.
    started_at : Optional[datetime]
        When the session was armed.
    countdown : Optional[int]
        Whole seconds left while spinning.
    persist_error : Optional[str]
        Message of the last failed commit, if any.
    cancelled : bool
        ``True`` once the session was torn down before settling.
    """

    phase: SpinPhase
    winner: Optional[T]
    winner_index: Optional[int]
    target_angle_deg: Optional[float]
    rotation_deg: float
    started_at: Optional[datetime]
    countdown: Optional[int]
    persist_error: Optional[str]
    cancelled: bool


Listener = Callable[[SpinFrame], None]


class SpinSession(Generic[T]):
    """State machine driving a single wheel spin or organizer draw."""

    def __init__(
        self,
        candidates: Sequence[T],
        *,
        on_settle: Optional[SettleCallback] = None,
        min_candidates: int = MIN_WHEEL_PRIZES,
        with_angle: bool = True,
        duration_ms: int = DEFAULT_SPIN_DURATION_MS,
        render_delay_ms: int = DEFAULT_RENDER_COMMIT_DELAY_MS,
        extra_turns: Optional[int] = None,
        rng: Optional[random.Random] = None,
        initial_rotation: float = 0.0,
    ) -> None:
        """Create an idle session over ``candidates``.

        Parameters
        ----------
        candidates : Sequence[T]
            Prizes (wheel) or eligible entries (organizer draw). The sequence
            is copied; for the wheel its order is the slice order.
        on_settle : Optional[SettleCallback], default: None
            Called with the winner once the session settles. May be a
            coroutine function. Raising :class:`PrizeWheelError` marks the
            session as settled with a persistence error.
        min_candidates : int, default: 2
            Smallest pool that may be armed.
        with_angle : bool, default: True
            Whether to compute a wheel rotation target.
        duration_ms : int, default: 5000
            Spin duration.
        render_delay_ms : int, default: 50
            Delay between arming and spinning so the renderer commits the
            resting frame first.
        extra_turns : Optional[int], default: None
            Fixed number of decorative turns. Random (4 or 5) when omitted.
        rng : Optional[random.Random], default: None
            Randomness for the winner and the decorative turns.
        initial_rotation : float, default: 0.0
            Rotation the wheel currently rests at.
        """

        if duration_ms < 0 or render_delay_ms < 0:
            raise ValueError("Durations must not be negative")
        self._candidates = list(candidates)
        self._on_settle = on_settle
        self._min_candidates = min_candidates
        self._with_angle = with_angle
        self._duration = duration_ms / 1000
        self._render_delay = render_delay_ms / 1000
        self._extra_turns = extra_turns
        self._rng = rng

        self._phase = SpinPhase.IDLE
        self._winner: Optional[T] = None
        self._winner_index: Optional[int] = None
        self._target: Optional[float] = None
        self._rotation = initial_rotation
        self._started_at: Optional[datetime] = None
        self._spin_ends_at: Optional[float] = None
        self._persist_error: Optional[str] = None
        self._committed = False
        self._cancelled = False
        self._closed = False
        self._task: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []

    @classmethod
    def for_wheel(cls, prizes: Sequence[T], **kwargs: Any) -> "SpinSession[T]":
        """Session over wheel prizes: at least two slices, with a rotation target."""

        return cls(prizes, min_candidates=MIN_WHEEL_PRIZES, with_angle=True, **kwargs)

    @classmethod
    def for_draw(cls, pool: Sequence[T], **kwargs: Any) -> "SpinSession[T]":
        """Session over an eligible participant pool: one entry is enough."""

        return cls(pool, min_candidates=MIN_DRAW_PARTICIPANTS, with_angle=False, **kwargs)

    # -------- state --------
    @property
    def phase(self) -> SpinPhase:
        return self._phase

    @property
    def winner(self) -> Optional[T]:
        return self._winner

    @property
    def winner_index(self) -> Optional[int]:
        return self._winner_index

    @property
    def target_angle_deg(self) -> Optional[float]:
        return self._target

    @property
    def rotation_deg(self) -> float:
        return self._rotation

    @property
    def persist_error(self) -> Optional[str]:
        return self._persist_error

    @property
    def committed(self) -> bool:
        return self._committed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def countdown(self) -> Optional[int]:
        if self._phase is not SpinPhase.SPINNING or self._spin_ends_at is None:
            return None
        remaining = self._spin_ends_at - asyncio.get_running_loop().time()
        return max(0, math.ceil(remaining))

    def snapshot(self) -> SpinFrame[T]:
        return SpinFrame(
            phase=self._phase,
            winner=self._winner,
            winner_index=self._winner_index,
            target_angle_deg=self._target,
            rotation_deg=self._rotation,
            started_at=self._started_at,
            countdown=self.countdown if self._phase is SpinPhase.SPINNING else None,
            persist_error=self._persist_error,
            cancelled=self._cancelled,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for every transition; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self) -> None:
        frame = self.snapshot()
        for listener in list(self._listeners):
            listener(frame)

    def _set_phase(self, phase: SpinPhase) -> None:
        logger.debug(f"Spin session {id(self):#x}: {self._phase.value} -> {phase.value}")
        self._phase = phase
        self._emit()

    # -------- transitions --------
    def start(self) -> bool:
        """Arm the session and schedule the spin.

        Returns ``False`` without doing anything when the session is not idle,
        was closed, or the pool is smaller than the minimum. The winner is
        selected here, before any animation starts.

        Must be called from a running event loop.
        """

        if self._closed or self._phase is not SpinPhase.IDLE:
            return False
        if len(self._candidates) < self._min_candidates:
            logger.info(
                f"Refusing to arm: {len(self._candidates)} candidates, "
                f"{self._min_candidates} required"
            )
            return False

        loop = asyncio.get_running_loop()

        self._winner_index = select_index(len(self._candidates), rng=self._rng)
        self._winner = self._candidates[self._winner_index]
        if self._with_angle:
            turns = (
                self._extra_turns
                if self._extra_turns is not None
                else angle.random_extra_turns(self._rng)
            )
            self._target = angle.resolve(
                self._winner_index, len(self._candidates), turns
            )
        self._started_at = datetime.now(timezone.utc)
        self._set_phase(SpinPhase.ARMED)
        self._task = loop.create_task(self._run())
        return True

    async def _run(self) -> None:
        # Two separate continuations: the resting frame is delivered before
        # the rotating one.
        await asyncio.sleep(self._render_delay)
        loop = asyncio.get_running_loop()
        if self._target is not None:
            self._rotation = self._target
        self._spin_ends_at = loop.time() + self._duration
        self._set_phase(SpinPhase.SPINNING)

        await asyncio.sleep(self._duration)
        self._spin_ends_at = None
        # Safe to normalize now; nothing is animating.
        self._rotation = angle.normalize(self._rotation)
        self._set_phase(SpinPhase.SETTLED)
        await self._commit()

    async def _commit(self) -> bool:
        if self._committed:
            return True
        if self._on_settle is None:
            self._committed = True
            return True
        try:
            outcome = self._on_settle(self._winner)
            if inspect.isawaitable(outcome):
                await outcome
        except PrizeWheelError as exc:
            self._persist_error = str(exc) or exc.__class__.__name__
            logger.warning(f"Spin result could not be saved: {self._persist_error}")
            self._emit()
            return False
        self._committed = True
        self._persist_error = None
        self._emit()
        return True

    async def retry_commit(self) -> bool:
        """Retry persisting the settled result after a failed commit.

        The drawn winner is kept; drawing again would break the one-spin rule.
        Returns ``True`` once the result is saved.
        """

        if self._phase is not SpinPhase.SETTLED:
            raise RuntimeError("Only a settled session can retry its commit")
        if self._committed:
            return True
        return await self._commit()

    async def wait_settled(self) -> Optional[T]:
        """Wait for the session to finish; returns the winner, or ``None`` if cancelled.

        Exceptions other than :class:`PrizeWheelError` raised by the commit
        callback propagate from here.
        """

        if self._task is None:
            return self._winner if self._phase is SpinPhase.SETTLED else None
        await asyncio.wait({self._task})
        if self._task.cancelled():
            return None
        self._task.result()
        return self._winner

    def close(self) -> None:
        """Tear the session down.

        An armed or spinning session is cancelled and will never commit. A
        settled session keeps its result (including an in-flight commit).
        """

        if self._closed:
            return
        self._closed = True
        if self._phase in (SpinPhase.ARMED, SpinPhase.SPINNING):
            self._cancelled = True
            if self._task is not None:
                self._task.cancel()
            logger.info(f"Spin session {id(self):#x} cancelled during {self._phase.value}")
        self._listeners.clear()


__all__ = [
    "DEFAULT_RENDER_COMMIT_DELAY_MS",
    "DEFAULT_SPIN_DURATION_MS",
    "SpinFrame",
    "SpinPhase",
    "SpinSession",
]
