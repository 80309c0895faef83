"""Per-target attempt bookkeeping as an explicit state machine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..errors import HarvestError


class AttemptState(str, Enum):
    INIT = "init"
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    RETRYING = "retrying"
    FAILED = "failed"


class InvalidTransition(HarvestError):
    def __init__(self, current: AttemptState, requested: AttemptState) -> None:
        super().__init__(f"Cannot move from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


_ALLOWED: dict[AttemptState, frozenset[AttemptState]] = {
    AttemptState.INIT: frozenset({AttemptState.ATTEMPTING, AttemptState.RETRYING, AttemptState.FAILED}),
    AttemptState.ATTEMPTING: frozenset(
        {AttemptState.SUCCEEDED, AttemptState.RETRYING, AttemptState.FAILED}
    ),
    AttemptState.RETRYING: frozenset({AttemptState.INIT}),
    AttemptState.SUCCEEDED: frozenset(),
    AttemptState.FAILED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """``budget`` is the total number of attempts, not the number of retries."""

    budget: int = 3
    backoff_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.budget < 1:
            raise ValueError("budget must be >= 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be >= 0")


@dataclass(slots=True)
class RetryState:
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    state: AttemptState = AttemptState.INIT
    attempts: int = 0
    last_error: BaseException | None = None

    @property
    def retries_left(self) -> int:
        return self.policy.budget - self.attempts

    @property
    def is_terminal(self) -> bool:
        return self.state in (AttemptState.SUCCEEDED, AttemptState.FAILED)

    def begin(self) -> None:
        """Start a new attempt: INIT, or RETRYING back to INIT."""
        if self.state is AttemptState.RETRYING:
            self._move(AttemptState.INIT)
        elif self.state is not AttemptState.INIT or self.attempts:
            raise InvalidTransition(self.state, AttemptState.INIT)
        self.attempts += 1

    def attempting(self) -> None:
        self._move(AttemptState.ATTEMPTING)

    def succeed(self) -> None:
        self._move(AttemptState.SUCCEEDED)

    def fail(self, exc: BaseException | None = None) -> AttemptState:
        """Record a failed attempt and return RETRYING or FAILED."""
        self.last_error = exc
        nxt = AttemptState.RETRYING if self.retries_left > 0 else AttemptState.FAILED
        self._move(nxt)
        return nxt

    def _move(self, nxt: AttemptState) -> None:
        if nxt not in _ALLOWED[self.state]:
            raise InvalidTransition(self.state, nxt)
        self.state = nxt


__all__ = ["AttemptState", "InvalidTransition", "RetryPolicy", "RetryState"]
