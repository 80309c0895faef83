"""Capability contract between the pipeline and page automation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator

from ..config import ExtractionConfig, TargetConfig

SourceHandle = Any


class SourceCapability(ABC):
    """Narrow interface the pipeline uses to drive a page-like source.

    Implementations raise ``NavigationError``, ``NotReadyError`` or
    ``InteractionError`` for round-local failures. ``read_records`` is best
    effort: missing fields come back absent or empty instead of raising.
    """

    @abstractmethod
    def open_source(self) -> SourceHandle:
        """Acquire a fresh interactive source."""

    @abstractmethod
    def close_source(self, handle: SourceHandle) -> None:
        """Release a source obtained from ``open_source``."""

    @abstractmethod
    def navigate(self, handle: SourceHandle, target: TargetConfig) -> None:
        """Load the target's location."""

    @abstractmethod
    def wait_for_ready(self, handle: SourceHandle, selector: str, timeout_ms: int) -> None:
        """Block until ``selector`` is visible or the timeout expires."""

    @abstractmethod
    def reveal_more(self, handle: SourceHandle) -> None:
        """Perform one scroll or paginate step."""

    @abstractmethod
    def read_records(
        self, handle: SourceHandle, extraction: ExtractionConfig
    ) -> list[dict[str, Any]]:
        """Return every currently visible record as a raw field map."""

    @contextmanager
    def opened(self) -> Iterator[SourceHandle]:
        handle = self.open_source()
        try:
            yield handle
        finally:
            self.close_source(handle)


__all__ = ["SourceCapability", "SourceHandle"]
