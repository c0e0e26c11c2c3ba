"""Unit tests for the convergence poller."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from convergence_harness.errors import ConvergenceError
from convergence_harness.poller import (
    CancellationToken,
    OutcomeState,
    PollOutcome,
    PollResult,
    PollSpec,
    PollStatus,
    SystemClock,
    poll,
)
from tests.fakes import FakeClock


def recording(clock, outcomes):
    """Step that replays outcomes and records the virtual time of each tick."""
    times = []

    def step():
        times.append(clock.now)
        return outcomes[min(len(times) - 1, len(outcomes) - 1)]

    return step, times


class TestPollSpec:
    """Tests for PollSpec."""

    def test_valid_spec(self):
        """Test interval and timeout are kept as given."""
        spec = PollSpec(interval=5, timeout=60)
        assert spec.interval == 5
        assert spec.timeout == 60

    @pytest.mark.parametrize("interval", [0, -1.5])
    def test_rejects_non_positive_interval(self, interval):
        """Test interval must be positive."""
        with pytest.raises(ValueError):
            PollSpec(interval=interval, timeout=10)

    def test_short_timeout_raised_to_interval(self):
        """Test timeout below interval is adjusted up."""
        spec = PollSpec(interval=5, timeout=2)
        assert spec.timeout == 5

    def test_immutable(self):
        """Test a PollSpec cannot change once built."""
        spec = PollSpec(interval=1, timeout=3)
        with pytest.raises(AttributeError):
            spec.timeout = 10


class TestPollOutcome:
    """Tests for PollOutcome constructors."""

    def test_constructors(self):
        assert PollOutcome.converged().state is OutcomeState.CONVERGED
        assert PollOutcome.pending("replicas=3").detail == "replicas=3"
        failed = PollOutcome.failed("forbidden")
        assert failed.state is OutcomeState.FAILED
        assert failed.detail == "forbidden"


class TestPoll:
    """Tests for the poll loop."""

    def test_converged_first_tick(self, clock):
        """Test converging on the first tick returns without sleeping."""
        step, times = recording(clock, [PollOutcome.converged()])

        result = poll(PollSpec(1, 3), step, clock=clock)

        assert result.status is PollStatus.SUCCESS
        assert result.ok is True
        assert result.ticks == 1
        assert times == [0.0]
        assert clock.sleeps == []

    def test_always_pending_times_out_after_three_ticks(self, clock):
        """Test interval=1s, timeout=3s gives ticks at t=0,1,2 then times out at t=3."""
        step, times = recording(clock, [PollOutcome.pending("waiting")])

        result = poll(PollSpec(interval=1, timeout=3), step, clock=clock)

        assert result.status is PollStatus.TIMED_OUT
        assert result.ticks == 3
        assert times == [0.0, 1.0, 2.0]
        assert result.elapsed_seconds == 3.0
        assert result.error == "waiting"

    def test_timeout_equal_to_interval_runs_one_tick(self, clock):
        """Test exactly one tick when timeout == interval."""
        step, times = recording(clock, [PollOutcome.pending()])

        result = poll(PollSpec(interval=2, timeout=2), step, clock=clock)

        assert result.status is PollStatus.TIMED_OUT
        assert result.ticks == 1

    def test_adjusted_timeout_runs_one_tick(self, clock):
        """Test a timeout shorter than the interval still gets exactly one tick."""
        step, times = recording(clock, [PollOutcome.pending()])

        result = poll(PollSpec(interval=5, timeout=1), step, clock=clock)

        assert result.ticks == 1
        assert times == [0.0]
        assert result.elapsed_seconds == 5.0

    def test_failed_is_fatal_without_retry(self, clock):
        """Test a failed tick ends the run immediately."""
        step, times = recording(
            clock, [PollOutcome.pending(), PollOutcome.failed("forbidden")]
        )

        result = poll(PollSpec(1, 60), step, clock=clock)

        assert result.status is PollStatus.FATAL
        assert result.error == "forbidden"
        assert result.ticks == 2
        assert times == [0.0, 1.0]

    def test_replica_countdown_scenario(self, clock):
        """Test counts 3,3,3,0 at t=0,5,10,15 converge at t=15."""
        counts = iter([3, 3, 3, 0])

        def step():
            count = next(counts)
            if count == 0:
                return PollOutcome.converged()
            return PollOutcome.pending(f"replicas={count}")

        result = poll(PollSpec(interval=5, timeout=60), step, clock=clock)

        assert result.status is PollStatus.SUCCESS
        assert result.ticks == 4
        assert result.elapsed_seconds == 15.0
        assert result.elapsed_seconds <= 20.0

    def test_slow_step_skips_missed_boundaries(self, clock):
        """Test a step longer than the interval runs on the next free boundary."""
        times = []

        def step():
            times.append(clock.now)
            clock.advance(2.5)
            return PollOutcome.pending()

        result = poll(PollSpec(interval=1, timeout=10), step, clock=clock)

        assert result.status is PollStatus.TIMED_OUT
        assert times == [0.0, 3.0, 6.0, 9.0]

    def test_on_tick_receives_every_outcome(self, clock):
        """Test progress callback sees each tick."""
        seen = []
        outcomes = [PollOutcome.pending("a"), PollOutcome.pending("b"), PollOutcome.converged()]
        step, _ = recording(clock, outcomes)

        poll(PollSpec(1, 10), step, clock=clock, on_tick=lambda t, o: seen.append((t, o)))

        assert seen == [(1, outcomes[0]), (2, outcomes[1]), (3, outcomes[2])]

    def test_step_exceptions_propagate(self, clock):
        """Test the poller does not swallow errors raised by a step."""

        def step():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            poll(PollSpec(1, 3), step, clock=clock)

    def test_cancelled_before_start(self, clock):
        """Test an already-cancelled token runs no ticks."""
        token = CancellationToken()
        token.cancel()
        step, times = recording(clock, [PollOutcome.pending()])

        result = poll(PollSpec(1, 3), step, clock=clock, cancel=token)

        assert result.status is PollStatus.CANCELLED
        assert result.ticks == 0
        assert times == []

    def test_cancel_stops_further_ticks(self, clock):
        """Test cancelling mid-run ends it before the next tick."""
        token = CancellationToken()
        step, times = recording(clock, [PollOutcome.pending("still there")])

        def on_tick(tick, outcome):
            if tick == 2:
                token.cancel()

        result = poll(PollSpec(1, 60), step, clock=clock, cancel=token, on_tick=on_tick)

        assert result.status is PollStatus.CANCELLED
        assert result.ticks == 2
        assert result.error == "still there"

    def test_cancel_during_final_wait(self, clock):
        """Test cancelling while waiting for the deadline reports cancelled."""
        token = CancellationToken()

        def step():
            token.cancel()
            return PollOutcome.pending()

        result = poll(PollSpec(1, 1), step, clock=clock, cancel=token)

        assert result.status is PollStatus.CANCELLED

    def test_independent_runs_in_parallel(self):
        """Test concurrent runs with separate clocks do not interfere."""

        def run(target):
            clock = FakeClock()
            seen = iter(range(100))

            def step():
                if next(seen) >= target:
                    return PollOutcome.converged()
                return PollOutcome.pending()

            return poll(PollSpec(1, 60), step, clock=clock)

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(run, [1, 3, 5, 7]))

        assert [r.ticks for r in results] == [2, 4, 6, 8]
        assert all(r.ok for r in results)


class TestPollResult:
    """Tests for PollResult."""

    def test_raise_for_status_success(self):
        """Test success does not raise."""
        PollResult(PollStatus.SUCCESS).raise_for_status()

    def test_raise_for_status_timed_out(self):
        """Test a timed out result raises ConvergenceError with context."""
        result = PollResult(
            PollStatus.TIMED_OUT,
            ticks=12,
            elapsed_seconds=60.0,
            error="replicas=3",
            description="web deletion",
        )

        with pytest.raises(ConvergenceError) as exc_info:
            result.raise_for_status()

        assert "Timed out after 60.0s waiting for web deletion" in str(exc_info.value)
        assert "replicas=3" in str(exc_info.value)
        assert exc_info.value.result is result

    def test_raise_for_status_fatal(self):
        """Test a fatal result raises."""
        with pytest.raises(ConvergenceError, match="Failed waiting"):
            PollResult(PollStatus.FATAL, error="forbidden").raise_for_status()


class TestSystemClock:
    """Tests for the real clock."""

    def test_monotonic_increases(self):
        clock = SystemClock()
        assert clock.monotonic() <= clock.monotonic()

    def test_sleep_wakes_on_cancel(self):
        """Test a cancelled token cuts the sleep short."""
        token = CancellationToken()
        token.cancel()
        start = time.monotonic()

        SystemClock().sleep(30, token)

        assert time.monotonic() - start < 5

    def test_sleep_ignores_non_positive(self):
        start = time.monotonic()
        SystemClock().sleep(-1)
        assert time.monotonic() - start < 1

    def test_real_time_poll(self):
        """Test a short real-time run times out."""
        result = poll(PollSpec(0.01, 0.03), lambda: PollOutcome.pending())
        assert result.status is PollStatus.TIMED_OUT
        assert 1 <= result.ticks <= 3
