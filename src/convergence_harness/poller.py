"""Convergence poller.

Runs a step function on a fixed interval until it reports convergence, a
fatal failure, the deadline passes, or the caller cancels. Steps do the
remote call and the classification; the poller only owns timing.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

from .errors import ConvergenceError
from .shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class PollSpec:
    """Interval and overall budget for one poll run, in seconds.

    A timeout shorter than the interval is raised to the interval, so every
    run gets at least one tick.
    """

    interval: float
    timeout: float

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.interval}")
        if self.timeout < self.interval:
            object.__setattr__(self, "timeout", self.interval)


class OutcomeState(Enum):
    """Result of a single tick."""

    CONVERGED = "converged"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class PollOutcome:
    """What one tick observed."""

    state: OutcomeState
    detail: str | None = None

    @classmethod
    def converged(cls, detail: str | None = None) -> PollOutcome:
        return cls(OutcomeState.CONVERGED, detail)

    @classmethod
    def pending(cls, detail: str | None = None) -> PollOutcome:
        return cls(OutcomeState.PENDING, detail)

    @classmethod
    def failed(cls, reason: str) -> PollOutcome:
        return cls(OutcomeState.FAILED, reason)


class PollStatus(Enum):
    """Terminal status of a poll run."""

    SUCCESS = "success"
    TIMED_OUT = "timed_out"
    FATAL = "fatal"
    CANCELLED = "cancelled"


@dataclass
class PollResult:
    """Final result of a poll run."""

    status: PollStatus
    ticks: int = 0
    elapsed_seconds: float = 0.0
    error: str | None = None
    description: str = "condition"

    @property
    def ok(self) -> bool:
        return self.status is PollStatus.SUCCESS

    def raise_for_status(self) -> None:
        """Raise ConvergenceError unless the run succeeded."""
        if self.ok:
            return
        if self.status is PollStatus.TIMED_OUT:
            message = f"Timed out after {self.elapsed_seconds:.1f}s waiting for {self.description}"
        elif self.status is PollStatus.CANCELLED:
            message = f"Cancelled while waiting for {self.description}"
        else:
            message = f"Failed waiting for {self.description}"
        if self.error:
            message = f"{message}: {self.error}"
        raise ConvergenceError(message, result=self)


class CancellationToken:
    """Thread-safe flag a caller sets to abort a running wait."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Block up to timeout seconds; True if cancelled meanwhile."""
        return self._event.wait(timeout)


class Clock(Protocol):
    """Time source for the poller."""

    def monotonic(self) -> float: ...

    def sleep(self, seconds: float, cancel: CancellationToken | None = None) -> None: ...


class SystemClock:
    """Wall-clock time. Sleeps wake early when the token is cancelled."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel: CancellationToken | None = None) -> None:
        if seconds <= 0:
            return
        if cancel is not None:
            cancel.wait(seconds)
        else:
            time.sleep(seconds)


SYSTEM_CLOCK = SystemClock()

Step = Callable[[], PollOutcome]
TickCallback = Callable[[int, PollOutcome], None]


def poll(
    spec: PollSpec,
    step: Step,
    *,
    clock: Clock | None = None,
    cancel: CancellationToken | None = None,
    on_tick: TickCallback | None = None,
    description: str = "condition",
) -> PollResult:
    """Run step on tick boundaries until it settles or the deadline passes.

    The first tick runs immediately; tick k runs at start + k * interval and
    only when that boundary falls strictly before start + timeout. Boundaries
    a slow step overran are skipped. Exceptions raised by step propagate.

    Args:
        spec: Interval and overall timeout.
        step: Performs one attempt and reports its outcome.
        clock: Time source (defaults to the system clock).
        cancel: Optional token to abort the wait early.
        on_tick: Optional callback called with (tick, outcome) after each tick
                 for progress reporting.
        description: What is being waited for, used in logs and errors.

    Returns:
        PollResult with the terminal status.
    """
    clock = clock or SYSTEM_CLOCK
    log = logger.bind(waiting_for=description)
    start = clock.monotonic()
    deadline = start + spec.timeout
    ticks = 0
    last_detail: str | None = None

    def finish(status: PollStatus, error: str | None = None) -> PollResult:
        return PollResult(
            status=status,
            ticks=ticks,
            elapsed_seconds=clock.monotonic() - start,
            error=error,
            description=description,
        )

    log.debug("poll_started", interval=spec.interval, timeout=spec.timeout)

    while True:
        if cancel is not None and cancel.cancelled:
            log.warning("poll_cancelled", ticks=ticks)
            return finish(PollStatus.CANCELLED, last_detail)

        ticks += 1
        outcome = step()
        elapsed = clock.monotonic() - start

        if on_tick:
            on_tick(ticks, outcome)

        if outcome.state is OutcomeState.CONVERGED:
            log.info("poll_converged", tick=ticks, elapsed=round(elapsed, 3), detail=outcome.detail)
            return finish(PollStatus.SUCCESS)

        if outcome.state is OutcomeState.FAILED:
            log.error("poll_failed", tick=ticks, elapsed=round(elapsed, 3), reason=outcome.detail)
            return finish(PollStatus.FATAL, outcome.detail)

        last_detail = outcome.detail
        log.info("poll_pending", tick=ticks, elapsed=round(elapsed, 3), detail=outcome.detail)

        now = clock.monotonic()
        boundary = ticks
        while start + boundary * spec.interval <= now:
            boundary += 1
        next_tick = start + boundary * spec.interval

        if next_tick >= deadline:
            clock.sleep(deadline - now, cancel)
            if cancel is not None and cancel.cancelled:
                log.warning("poll_cancelled", ticks=ticks)
                return finish(PollStatus.CANCELLED, last_detail)
            log.warning("poll_timed_out", ticks=ticks, timeout=spec.timeout, detail=last_detail)
            return finish(PollStatus.TIMED_OUT, last_detail)

        clock.sleep(next_tick - now, cancel)
