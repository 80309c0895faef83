"""Error taxonomy shared by the extraction pipeline and its source adapters."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class HarvestError(Exception):
    """Base class for harvester errors."""


@dataclass(frozen=True, slots=True)
class ValidationAnomaly:
    """A raw field that could not be used and was replaced by its fallback.

    Never raised: the validator resolves it and reports it on the record.
    """

    field: str
    reason: str


class ConfigFileError(HarvestError):
    """A target or global configuration file could not be parsed or validated."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration {path}: {reason}")


class SourceError(HarvestError):
    """Round-local failure of the page automation layer; recoverable by retry."""


class NavigationError(SourceError):
    """Navigation to the target timed out or failed at the network level."""


class NotReadyError(SourceError):
    """The page never reached the required state within the timeout."""


class InteractionError(SourceError):
    """A reveal control (scroll container, pager, load-more) was absent or unresponsive."""


class FlushIOError(HarvestError):
    """Writing buffered records to the output store failed; the run cannot continue."""

    def __init__(self, path: Path, lost: int, reason: str) -> None:
        self.path = path
        self.lost = lost
        self.reason = reason
        super().__init__(f"Failed to flush {lost} record(s) to {path}: {reason}")


class RetryBudgetExhausted(HarvestError):
    """A target failed on every attempt its retry budget allowed."""

    def __init__(self, target: str, attempts: int, admitted: int) -> None:
        self.target = target
        self.attempts = attempts
        self.admitted = admitted
        super().__init__(
            f"Target {target!r} failed after {attempts} attempt(s); {admitted} record(s) captured"
        )


__all__ = [
    "ConfigFileError",
    "FlushIOError",
    "HarvestError",
    "InteractionError",
    "NavigationError",
    "NotReadyError",
    "RetryBudgetExhausted",
    "SourceError",
    "ValidationAnomaly",
]
