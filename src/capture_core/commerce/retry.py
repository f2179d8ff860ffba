"""Retry policy and per-request lifecycle state machine.

States:
    IDLE -> QUEUED -> IN_FLIGHT -> DONE
                          |-> RETRY_WAIT -> QUEUED (next attempt)
                          |-> FAILED

A caller that gives up (task cancellation) moves any live state to FAILED.
"""
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .exceptions import (
    CommerceClientError,
    CommerceRateLimitError,
    CommerceUnreachableError,
    CommerceUpstreamError,
)


class RequestState(str, Enum):
    """Lifecycle states of one logical API request."""

    IDLE = "idle"
    QUEUED = "queued"
    IN_FLIGHT = "in_flight"
    RETRY_WAIT = "retry_wait"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.IDLE: frozenset({RequestState.QUEUED}),
    RequestState.QUEUED: frozenset({RequestState.IN_FLIGHT, RequestState.FAILED}),
    RequestState.IN_FLIGHT: frozenset(
        {RequestState.DONE, RequestState.RETRY_WAIT, RequestState.FAILED}
    ),
    RequestState.RETRY_WAIT: frozenset({RequestState.QUEUED, RequestState.FAILED}),
    RequestState.DONE: frozenset(),
    RequestState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry configuration.

    Rate-limited responses back off exponentially; upstream and network
    failures back off linearly by attempt number.
    """

    max_attempts: int = 4
    rate_limit_base_delay: float = 1.0
    rate_limit_multiplier: float = 2.0
    rate_limit_max_delay: float = 30.0
    transient_delay: float = 1.0
    jitter_ms: int = 0

    def rate_limit_backoff(self, attempt: int) -> float:
        """Delay before retrying after the given (1-indexed) rate-limited attempt."""
        delay = min(
            self.rate_limit_base_delay * (self.rate_limit_multiplier ** (attempt - 1)),
            self.rate_limit_max_delay,
        )
        return delay + self._jitter()

    def transient_backoff(self, attempt: int) -> float:
        """Delay before retrying after the given (1-indexed) transient failure."""
        return self.transient_delay * attempt + self._jitter()

    def _jitter(self) -> float:
        if not self.jitter_ms:
            return 0.0
        return random.uniform(0, self.jitter_ms / 1000.0)


class InvalidTransitionError(RuntimeError):
    """Raised when a lifecycle transition is not allowed from the current state."""


@dataclass
class RequestLifecycle:
    """Tracks attempts and state for one logical request."""

    policy: RetryPolicy = field(default_factory=RetryPolicy)
    state: RequestState = RequestState.IDLE
    attempt: int = 0
    last_error: Optional[CommerceClientError] = None
    history: list[RequestState] = field(default_factory=lambda: [RequestState.IDLE])

    def _move(self, target: RequestState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Cannot move request from {self.state.value} to {target.value}"
            )
        self.state = target
        self.history.append(target)

    def enqueue(self) -> None:
        self._move(RequestState.QUEUED)

    def start(self) -> None:
        self._move(RequestState.IN_FLIGHT)
        self.attempt += 1

    def succeed(self) -> None:
        self._move(RequestState.DONE)

    def abandon(self) -> None:
        """Fail a queued, in-flight or waiting request whose caller gave up."""
        if self.state in {RequestState.IDLE, RequestState.DONE, RequestState.FAILED}:
            return
        self._move(RequestState.FAILED)

    def fail(self, error: CommerceClientError) -> Optional[float]:
        """Record a failed attempt.

        Returns:
            Seconds to wait before the next attempt, or None when the
            request has failed for good.
        """
        self.last_error = error
        delay = self._retry_delay(error)
        if delay is None or self.attempt >= self.policy.max_attempts:
            self._move(RequestState.FAILED)
            return None

        self._move(RequestState.RETRY_WAIT)
        return delay

    def _retry_delay(self, error: CommerceClientError) -> Optional[float]:
        if isinstance(error, CommerceRateLimitError):
            if error.retry_after is not None:
                return min(error.retry_after, self.policy.rate_limit_max_delay)
            return self.policy.rate_limit_backoff(self.attempt)
        if isinstance(error, (CommerceUpstreamError, CommerceUnreachableError)):
            return self.policy.transient_backoff(self.attempt)
        return None

    @property
    def is_terminal(self) -> bool:
        return self.state in {RequestState.DONE, RequestState.FAILED}
