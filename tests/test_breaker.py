import asyncio
import threading

import pytest

from domain.breaker import (
    CircuitBreaker,
    CircuitOpenError,
    State,
    TooManyTrialsError,
    trip_after,
)
from tests.fakes import FakeClock


def fail(breaker: CircuitBreaker, n: int = 1) -> None:
    for _ in range(n):
        breaker.after_request(breaker.before_request(), success=False)


def succeed(breaker: CircuitBreaker, n: int = 1) -> None:
    for _ in range(n):
        breaker.after_request(breaker.before_request(), success=True)


def test_starts_closed(breaker: CircuitBreaker) -> None:
    assert breaker.state is State.CLOSED
    assert breaker.counts.consecutive_failures == 0


def test_trips_after_three_consecutive_failures(breaker: CircuitBreaker) -> None:
    fail(breaker, 2)
    assert breaker.state is State.CLOSED
    assert breaker.counts.consecutive_failures == 2

    fail(breaker)
    assert breaker.state is State.OPEN

    with pytest.raises(CircuitOpenError):
        breaker.before_request()


def test_success_resets_consecutive_failures(breaker: CircuitBreaker) -> None:
    fail(breaker, 2)
    succeed(breaker)
    fail(breaker, 2)
    assert breaker.state is State.CLOSED
    counts = breaker.counts
    assert counts.consecutive_failures == 2
    assert counts.total_failures == 4
    assert counts.total_successes == 1


def test_interval_resets_closed_counts(
    breaker: CircuitBreaker, clock: FakeClock
) -> None:
    fail(breaker, 2)
    clock.advance(60)
    assert breaker.counts.consecutive_failures == 0

    fail(breaker, 2)
    assert breaker.state is State.CLOSED


def test_open_until_cooldown(breaker: CircuitBreaker, clock: FakeClock) -> None:
    fail(breaker, 3)
    opened = breaker.changed_at

    clock.advance(29)
    with pytest.raises(CircuitOpenError):
        breaker.before_request()
    assert breaker.state is State.OPEN

    clock.advance(1)
    assert breaker.state is State.HALF_OPEN
    assert breaker.changed_at == opened + 30


def test_half_open_closes_after_trial_quota(
    breaker: CircuitBreaker, clock: FakeClock
) -> None:
    fail(breaker, 3)
    clock.advance(30)

    succeed(breaker)
    assert breaker.state is State.HALF_OPEN
    succeed(breaker, 2)

    assert breaker.state is State.CLOSED
    assert breaker.counts.consecutive_failures == 0
    assert breaker.counts.requests == 0


def test_half_open_failure_reopens(breaker: CircuitBreaker, clock: FakeClock) -> None:
    fail(breaker, 3)
    clock.advance(30)

    succeed(breaker)
    fail(breaker)
    assert breaker.state is State.OPEN

    # Cooldown starts over.
    clock.advance(29)
    with pytest.raises(CircuitOpenError):
        breaker.before_request()
    clock.advance(1)
    assert breaker.state is State.HALF_OPEN


def test_half_open_admits_only_trial_quota(
    breaker: CircuitBreaker, clock: FakeClock
) -> None:
    fail(breaker, 3)
    clock.advance(30)

    admitted = [breaker.before_request() for _ in range(3)]
    with pytest.raises(TooManyTrialsError):
        breaker.before_request()

    for generation in admitted:
        breaker.after_request(generation, success=True)
    assert breaker.state is State.CLOSED


def test_stale_results_are_ignored(breaker: CircuitBreaker, clock: FakeClock) -> None:
    slow = breaker.before_request()
    fail(breaker, 3)
    clock.advance(30)
    assert breaker.state is State.HALF_OPEN

    breaker.after_request(slow, success=False)
    assert breaker.state is State.HALF_OPEN


def test_custom_trip_and_callback(clock: FakeClock) -> None:
    changes: list[tuple[str, State, State]] = []
    breaker = CircuitBreaker(
        "custom",
        max_requests=1,
        timeout=5,
        ready_to_trip=trip_after(1),
        on_state_change=lambda name, prev, new: changes.append((name, prev, new)),
        clock=clock,
    )

    fail(breaker)
    clock.advance(5)
    succeed(breaker)

    assert changes == [
        ("custom", State.CLOSED, State.OPEN),
        ("custom", State.OPEN, State.HALF_OPEN),
        ("custom", State.HALF_OPEN, State.CLOSED),
    ]


def test_half_open_admission_across_threads(
    breaker: CircuitBreaker, clock: FakeClock
) -> None:
    fail(breaker, 3)
    clock.advance(30)

    admitted: list[int] = []
    rejected: list[Exception] = []
    start = threading.Barrier(10)

    def attempt() -> None:
        start.wait()
        try:
            admitted.append(breaker.before_request())
        except TooManyTrialsError as e:
            rejected.append(e)

    threads = [threading.Thread(target=attempt) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(admitted) == 3
    assert len(rejected) == 7


@pytest.mark.asyncio
async def test_call_records_outcomes(breaker: CircuitBreaker) -> None:
    async def ok() -> str:
        return "ok"

    async def boom() -> str:
        raise RuntimeError("boom")

    assert await breaker.call(ok) == "ok"
    for _ in range(3):
        with pytest.raises(RuntimeError):
            await breaker.call(boom)

    with pytest.raises(CircuitOpenError):
        await breaker.call(ok)


@pytest.mark.asyncio
async def test_cancelled_call_is_not_a_failure(breaker: CircuitBreaker) -> None:
    async def hang() -> None:
        await asyncio.sleep(10)

    task = asyncio.ensure_future(breaker.call(hang))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    counts = breaker.counts
    assert counts.consecutive_failures == 0
    assert counts.total_failures == 0
    assert counts.requests == 0


@pytest.mark.asyncio
async def test_cancelled_trial_frees_half_open_slot(
    breaker: CircuitBreaker, clock: FakeClock
) -> None:
    async def hang() -> None:
        await asyncio.sleep(10)

    fail(breaker, 3)
    clock.advance(30)

    trials = [asyncio.ensure_future(breaker.call(hang)) for _ in range(3)]
    await asyncio.sleep(0)
    with pytest.raises(TooManyTrialsError):
        breaker.before_request()

    trials[0].cancel()
    with pytest.raises(asyncio.CancelledError):
        await trials[0]

    assert breaker.state is State.HALF_OPEN
    breaker.before_request()

    for trial in trials[1:]:
        trial.cancel()
    await asyncio.gather(*trials[1:], return_exceptions=True)


def test_threads_racing_the_trip_stop_at_open(clock: FakeClock) -> None:
    tripped = threading.Event()
    breaker = CircuitBreaker(
        "race",
        on_state_change=lambda name, prev, new: tripped.set(),
        clock=clock,
    )

    guard = threading.Lock()
    admitted: list[int] = []
    rejected: list[CircuitOpenError] = []
    leaked: list[int] = []
    start = threading.Barrier(10)

    def hammer() -> None:
        start.wait()
        for _ in range(5):
            seen_open = tripped.is_set()
            try:
                generation = breaker.before_request()
            except CircuitOpenError as e:
                with guard:
                    rejected.append(e)
                continue
            with guard:
                admitted.append(generation)
                if seen_open:
                    leaked.append(generation)
            breaker.after_request(generation, success=False)

    threads = [threading.Thread(target=hammer) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert breaker.state is State.OPEN
    assert leaked == []
    # Two failures recorded before the trip, the tripping one, and at most
    # one in flight on each of the other nine threads.
    assert 3 <= len(admitted) <= 12
    assert len(admitted) + len(rejected) == 50
    with pytest.raises(CircuitOpenError):
        breaker.before_request()


@pytest.mark.asyncio
async def test_racing_calls_after_trip_do_not_leak(breaker: CircuitBreaker) -> None:
    attempts = 0

    async def boom() -> None:
        nonlocal attempts
        attempts += 1
        raise RuntimeError("boom")

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await breaker.call(boom)

    results = await asyncio.gather(
        *(breaker.call(boom) for _ in range(5)), return_exceptions=True
    )

    assert all(isinstance(r, CircuitOpenError) for r in results)
    assert attempts == 3
