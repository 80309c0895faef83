"""Retry-driven scrape loop for a single target."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import structlog

from ..config import TargetConfig
from ..errors import FlushIOError
from ..sources.base import SourceCapability, SourceHandle
from .retry import AttemptState, RetryPolicy, RetryState
from .rounds import ExtractionRound

AdmitFn = Callable[[Mapping[str, Any]], bool]


@dataclass(slots=True)
class LoopOutcome:
    state: AttemptState
    attempts: int
    admitted: int
    rounds: int
    last_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is AttemptState.SUCCEEDED


class ScrapeLoop:
    """Run extraction rounds until the record limit or round budget is hit.

    Failures of the source layer end the current attempt; the target is then
    retried from a fresh source until ``retry_budget`` attempts have been
    spent. The admitted count carries over between attempts, the per-attempt
    round counter does not. ``FlushIOError`` is never retried.
    """

    def __init__(
        self,
        target: TargetConfig,
        capability: SourceCapability,
        round_runner: ExtractionRound,
        admit: AdmitFn,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.target = target
        self.capability = capability
        self.round_runner = round_runner
        self.admit = admit
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("harvester.loop")
        self.retry = RetryState(RetryPolicy(target.retry_budget, target.backoff_seconds))
        self.admitted = 0
        self.rounds = 0

    def run(self) -> LoopOutcome:
        retry = self.retry
        while not retry.is_terminal:
            retry.begin()
            self.logger.info("attempt_started", attempt=retry.attempts, url=self.target.location)
            try:
                with structlog.contextvars.bound_contextvars(attempt=retry.attempts):
                    self._attempt()
            except FlushIOError:
                raise
            except Exception as exc:  # noqa: BLE001
                nxt = retry.fail(exc)
                self.logger.warning(
                    "attempt_failed",
                    attempt=retry.attempts,
                    retries_left=retry.retries_left,
                    admitted=self.admitted,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if nxt is AttemptState.RETRYING:
                    if retry.policy.backoff_seconds > 0:
                        self._sleep(retry.policy.backoff_seconds)
                else:
                    self.logger.error(
                        "target_failed",
                        target=self.target.name,
                        attempts=retry.attempts,
                        admitted=self.admitted,
                    )
            else:
                retry.succeed()
        return LoopOutcome(
            state=retry.state,
            attempts=retry.attempts,
            admitted=self.admitted,
            rounds=self.rounds,
            last_error=str(retry.last_error) if retry.last_error is not None else None,
        )

    # ------------------------------------------------------------------
    def _attempt(self) -> None:
        target = self.target
        with self.capability.opened() as handle:
            self.capability.navigate(handle, target)
            if target.ready_selector:
                self.capability.wait_for_ready(
                    handle, target.ready_selector, target.ready_timeout_ms
                )
            self.retry.attempting()
            self._extract(handle)

    def _extract(self, handle: SourceHandle) -> None:
        target = self.target
        rounds = 0
        idle = 0
        while self.admitted < target.record_limit and rounds < target.round_budget:
            visible = self.round_runner.run(handle)
            fresh = 0
            for raw in visible:
                if self.admitted >= target.record_limit:
                    break
                if self.admit(raw):
                    self.admitted += 1
                    fresh += 1
            rounds += 1
            self.rounds += 1
            self.logger.debug(
                "round_completed",
                round=rounds,
                visible=len(visible),
                fresh=fresh,
                admitted=self.admitted,
            )
            if target.stall_rounds:
                idle = 0 if fresh else idle + 1
                if idle >= target.stall_rounds:
                    self.logger.info("target_stalled", rounds=rounds, admitted=self.admitted)
                    break


__all__ = ["AdmitFn", "LoopOutcome", "ScrapeLoop"]
