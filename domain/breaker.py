"""Circuit breaker guarding calls to the LLM api.

closed -> open once `ready_to_trip` says so; open -> half-open after `timeout`
seconds; half-open -> closed after `max_requests` consecutive successes, or back
to open on the first failure. Every state change, and every `interval` spent
closed, starts a new generation with fresh counts. Results reported for an old
generation are ignored. A request the caller cancels counts as neither a
success nor a failure; its slot is handed back.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
import threading
import time
from typing import Any, Awaitable, Callable, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class State(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


class CircuitOpenError(Exception):
    def __init__(self, name: str, message: str = "circuit breaker is open") -> None:
        super().__init__(f"{name}: {message}")
        self.name = name


class TooManyTrialsError(CircuitOpenError):
    def __init__(self, name: str) -> None:
        super().__init__(name, "too many requests while half-open")


@dataclass
class Counts:
    requests: int = 0
    total_successes: int = 0
    total_failures: int = 0
    consecutive_successes: int = 0
    consecutive_failures: int = 0

    def on_request(self) -> None:
        self.requests += 1

    def on_success(self) -> None:
        self.total_successes += 1
        self.consecutive_successes += 1
        self.consecutive_failures = 0

    def on_failure(self) -> None:
        self.total_failures += 1
        self.consecutive_failures += 1
        self.consecutive_successes = 0

    def clear(self) -> None:
        self.requests = 0
        self.total_successes = 0
        self.total_failures = 0
        self.consecutive_successes = 0
        self.consecutive_failures = 0


def trip_after(failures: int) -> Callable[[Counts], bool]:
    def ready_to_trip(counts: Counts) -> bool:
        return counts.consecutive_failures >= failures

    return ready_to_trip


class CircuitBreaker:
    def __init__(
        self,
        name: str = "llm",
        *,
        max_requests: int = 3,
        interval: float = 60.0,
        timeout: float = 30.0,
        ready_to_trip: Callable[[Counts], bool] | None = None,
        on_state_change: Callable[[str, State, State], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.max_requests = max(1, max_requests)
        self.interval = interval
        self.timeout = timeout
        self.ready_to_trip = trip_after(3) if ready_to_trip is None else ready_to_trip
        self.on_state_change = on_state_change
        self._clock = clock

        self._lock = threading.Lock()
        self._state = State.CLOSED
        self._generation = 0
        self._counts = Counts()
        self._expiry = 0.0
        self._changed_at = clock()
        self._new_generation(self._changed_at)

    @property
    def state(self) -> State:
        with self._lock:
            state, _ = self._current_state(self._clock())
            return state

    @property
    def counts(self) -> Counts:
        """A copy of the counts for the current generation."""
        with self._lock:
            self._current_state(self._clock())
            return Counts(**vars(self._counts))

    @property
    def changed_at(self) -> float:
        with self._lock:
            return self._changed_at

    def before_request(self) -> int:
        """Admit a request or raise. Returns the generation it was admitted in."""
        with self._lock:
            state, generation = self._current_state(self._clock())

            if state is State.OPEN:
                raise CircuitOpenError(self.name)
            if state is State.HALF_OPEN and self._counts.requests >= self.max_requests:
                raise TooManyTrialsError(self.name)

            self._counts.on_request()
            return generation

    def after_request(self, before: int, success: bool) -> None:
        with self._lock:
            now = self._clock()
            state, generation = self._current_state(now)
            if generation != before:
                return

            if success:
                self._on_success(state, now)
            else:
                self._on_failure(state, now)

    def cancel_request(self, before: int) -> None:
        """Give back the slot of a request the caller abandoned."""
        with self._lock:
            _, generation = self._current_state(self._clock())
            if generation == before and self._counts.requests > 0:
                self._counts.requests -= 1

    async def call(
        self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        generation = self.before_request()
        try:
            result = await fn(*args, **kwargs)
        except asyncio.CancelledError:
            # The caller went away, the api did not fail.
            self.cancel_request(generation)
            raise
        except BaseException:
            self.after_request(generation, success=False)
            raise
        self.after_request(generation, success=True)
        return result

    def _on_success(self, state: State, now: float) -> None:
        match state:
            case State.CLOSED:
                self._counts.on_success()
            case State.HALF_OPEN:
                self._counts.on_success()
                if self._counts.consecutive_successes >= self.max_requests:
                    self._set_state(State.CLOSED, now)
            case State.OPEN:
                pass

    def _on_failure(self, state: State, now: float) -> None:
        match state:
            case State.CLOSED:
                self._counts.on_failure()
                if self.ready_to_trip(self._counts):
                    self._set_state(State.OPEN, now)
            case State.HALF_OPEN:
                self._set_state(State.OPEN, now)
            case State.OPEN:
                pass

    def _current_state(self, now: float) -> tuple[State, int]:
        match self._state:
            case State.CLOSED:
                if self._expiry and self._expiry <= now:
                    self._new_generation(now)
            case State.OPEN:
                if self._expiry <= now:
                    self._set_state(State.HALF_OPEN, now)
            case State.HALF_OPEN:
                pass
        return self._state, self._generation

    def _set_state(self, state: State, now: float) -> None:
        if self._state is state:
            return

        prev, self._state = self._state, state
        self._changed_at = now
        self._new_generation(now)

        logger.warning(
            "Circuit breaker %s: %s -> %s", self.name, prev.value, state.value
        )
        if self.on_state_change is not None:
            self.on_state_change(self.name, prev, state)

    def _new_generation(self, now: float) -> None:
        self._generation += 1
        self._counts.clear()

        match self._state:
            case State.CLOSED:
                self._expiry = now + self.interval if self.interval > 0 else 0.0
            case State.OPEN:
                self._expiry = now + self.timeout
            case State.HALF_OPEN:
                self._expiry = 0.0
