"""Per-target pipeline wiring: validate, deduplicate, buffer and flush."""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

import structlog

from .config import TargetConfig
from .engine import (
    BufferedCsvExporter,
    DeduplicationIndex,
    ExtractionRound,
    LoopOutcome,
    RecordValidator,
    ScrapeLoop,
)
from .engine.exporter import BaseExporter
from .errors import RetryBudgetExhausted
from .sources.base import SourceCapability


class RunStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class RunSummary:
    """What a caller learns about one target run."""

    target: str
    status: RunStatus
    admitted: int
    output_path: Path
    attempts: int = 0
    rounds: int = 0
    duplicates: int = 0
    written: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is RunStatus.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def raise_for_status(self) -> None:
        if not self.ok:
            raise RetryBudgetExhausted(self.target, self.attempts, self.admitted)


class HarvestPipeline:
    """Everything one target run needs, owned by one object.

    ``close`` flushes whatever is still buffered exactly once and is safe to
    call repeatedly. ``run`` always closes, whether the loop succeeded, ran
    out of retries or raised.
    """

    def __init__(
        self,
        target: TargetConfig,
        capability: SourceCapability,
        output_path: Path,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | Any = random,
        logger: structlog.BoundLogger | None = None,
        sink: BaseExporter | None = None,
    ) -> None:
        self.target = target
        self.output_path = Path(output_path)
        self.logger = logger or structlog.get_logger("harvester.pipeline").bind(target=target.name)
        self.validator = RecordValidator(target.extraction.fields)
        self.dedup = DeduplicationIndex(target.identity_fields, logger=self.logger)
        self.sink = sink or BufferedCsvExporter(
            self.output_path,
            target.field_names,
            capacity=target.output.buffer_capacity,
            delimiter=target.output.delimiter,
            logger=self.logger,
        )
        self.round_runner = ExtractionRound(
            capability,
            target.extraction,
            settle_ms=target.reveal.settle_ms,
            sleep=sleep,
            rng=rng,
        )
        self.loop = ScrapeLoop(
            target,
            capability,
            self.round_runner,
            self.admit,
            sleep=sleep,
            logger=self.logger,
        )
        self._closed = False

    def __enter__(self) -> "HarvestPipeline":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def admitted(self) -> int:
        return self.loop.admitted

    def admit(self, raw: Mapping[str, Any]) -> bool:
        """Validate, deduplicate and buffer one raw record; True if it was new."""

        record = self.validator.validate(raw)
        if record.anomalies:
            self.logger.debug(
                "validation_anomaly",
                fields=sorted(record.defaulted),
                reasons=[anomaly.reason for anomaly in record.anomalies],
            )
        if self.dedup.check_record(record):
            return False
        self.sink.add(record)
        return True

    def run(self) -> RunSummary:
        outcome: LoopOutcome | None = None
        duplicates = 0
        try:
            outcome = self.loop.run()
            duplicates = self.dedup.duplicates
        finally:
            self.close()
        summary = RunSummary(
            target=self.target.name,
            status=RunStatus.SUCCEEDED if outcome.succeeded else RunStatus.FAILED,
            admitted=outcome.admitted,
            output_path=self.output_path,
            attempts=outcome.attempts,
            rounds=outcome.rounds,
            duplicates=duplicates,
            written=getattr(self.sink, "written", outcome.admitted),
            error=outcome.last_error if not outcome.succeeded else None,
        )
        self.logger.info(
            "run_completed",
            status=summary.status.value,
            admitted=summary.admitted,
            attempts=summary.attempts,
            output=str(summary.output_path),
        )
        return summary

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.sink.close()
        finally:
            self.dedup.clear()


__all__ = ["HarvestPipeline", "RunStatus", "RunSummary"]
