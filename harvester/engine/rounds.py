"""One reveal/settle/read cycle against an open source."""

from __future__ import annotations

import random
import time
from typing import Any, Callable

from ..config import ExtractionConfig
from ..sources.base import SourceCapability, SourceHandle


class ExtractionRound:
    """Reveal more content, let the page settle, then read what is visible.

    ``read_visible`` returns every visible item, including items already seen
    in earlier rounds; filtering them out is the deduplication index's job.
    """

    def __init__(
        self,
        capability: SourceCapability,
        extraction: ExtractionConfig,
        settle_ms: tuple[float, float] = (700.0, 1500.0),
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | Any = random,
    ) -> None:
        low, high = settle_ms
        if low < 0 or high < low:
            raise ValueError("settle_ms must be a non-negative (min, max) window")
        self.capability = capability
        self.extraction = extraction
        self.settle_ms = (float(low), float(high))
        self._sleep = sleep
        self._rng = rng

    def settle_seconds(self) -> float:
        low, high = self.settle_ms
        if high == low:
            return low / 1000.0
        return self._rng.uniform(low, high) / 1000.0

    def reveal(self, handle: SourceHandle) -> None:
        self.capability.reveal_more(handle)
        pause = self.settle_seconds()
        if pause > 0:
            self._sleep(pause)

    def read_visible(self, handle: SourceHandle) -> list[dict[str, Any]]:
        return list(self.capability.read_records(handle, self.extraction))

    def run(self, handle: SourceHandle) -> list[dict[str, Any]]:
        self.reveal(handle)
        return self.read_visible(handle)


__all__ = ["ExtractionRound"]
